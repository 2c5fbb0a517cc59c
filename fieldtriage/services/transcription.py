"""Speech-to-text adapters for OpenAI Whisper and Deepgram.

Both call the HTTP APIs directly with `requests`. Unlike the analysis
adapter there is no fallback text: every failure raises
``TranscriptionError`` so the pipeline can move the submission to ``error``.
"""

import mimetypes

import requests

from ..errors import TranscriptionError
from .storage import download_bytes, filename_of


def _read_artifact(audio_ref: str) -> bytes:
    try:
        audio = download_bytes(audio_ref)
    except Exception as e:
        raise TranscriptionError(f"could not read audio artifact {audio_ref}: {e}") from e
    if not audio:
        raise TranscriptionError(f"audio artifact {audio_ref} is empty")
    return audio


def _content_type(filename):
    return mimetypes.guess_type(filename)[0] or 'audio/wav'


class Transcriber:
    name = 'base'

    def transcribe(self, audio_ref: str) -> str:
        raise NotImplementedError


class WhisperTranscriber(Transcriber):
    name = 'whisper'
    url = 'https://api.openai.com/v1/audio/transcriptions'

    def __init__(self, api_key, model='whisper-1', timeout=60, http=None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.http = http or requests

    def transcribe(self, audio_ref: str) -> str:
        if not self.api_key:
            raise TranscriptionError('OPENAI_API_KEY is not configured')
        audio = _read_artifact(audio_ref)
        filename = filename_of(audio_ref)
        try:
            r = self.http.post(
                self.url,
                headers={'Authorization': f'Bearer {self.api_key}'},
                data={'model': self.model, 'response_format': 'text'},
                files={'file': (filename, audio, _content_type(filename))},
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise TranscriptionError(f'Whisper transcription failed: {e}') from e
        text = (r.text or '').strip()
        if not text:
            raise TranscriptionError('Whisper returned an empty transcript')
        return text


class DeepgramTranscriber(Transcriber):
    name = 'deepgram'
    url = 'https://api.deepgram.com/v1/listen'

    def __init__(self, api_key, language=None, timeout=60, http=None):
        self.api_key = api_key
        self.language = language
        self.timeout = timeout
        self.http = http or requests

    def transcribe(self, audio_ref: str) -> str:
        if not self.api_key:
            raise TranscriptionError('DEEPGRAM_API_KEY is not configured')
        audio = _read_artifact(audio_ref)
        params = {'punctuate': 'true'}
        if self.language:
            params['language'] = self.language
        headers = {
            'Authorization': f'Token {self.api_key}',
            'Content-Type': _content_type(filename_of(audio_ref)),
        }
        try:
            r = self.http.post(self.url, params=params, headers=headers, data=audio, timeout=self.timeout)
            r.raise_for_status()
            jr = r.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise TranscriptionError(f'Deepgram transcription failed: {e}') from e

        text = extract_deepgram_transcript(jr)
        if not text:
            raise TranscriptionError('Deepgram returned an empty transcript')
        return text


def extract_deepgram_transcript(jr) -> str:
    """Pull transcript text out of a Deepgram response.

    Typical shape: {results: {channels: [{alternatives: [{transcript: ...}]}]}};
    fall back to joined utterances.
    """
    if not isinstance(jr, dict):
        return ''
    try:
        text = jr['results']['channels'][0]['alternatives'][0].get('transcript')
    except (KeyError, IndexError, TypeError, AttributeError):
        text = None
    if not text:
        utterances = jr.get('utterances') or (jr.get('results') or {}).get('utterances') or []
        text = ' '.join((u.get('transcript') or '').strip() for u in utterances if isinstance(u, dict))
    return (text or '').strip()


def build_transcriber(config) -> Transcriber:
    backend = (config.get('TRANSCRIPTION_BACKEND') or 'whisper').lower()
    timeout = config.get('EXTERNAL_TIMEOUT_SEC', 60)
    if backend == 'deepgram':
        return DeepgramTranscriber(config.get('DEEPGRAM_API_KEY'), language=config.get('DEEPGRAM_LANGUAGE'), timeout=timeout)
    if backend == 'whisper':
        return WhisperTranscriber(config.get('OPENAI_API_KEY'), model=config.get('WHISPER_MODEL', 'whisper-1'), timeout=timeout)
    raise ValueError(f"unknown TRANSCRIPTION_BACKEND {backend!r}")
