import os
import sys

# ensure project root is on sys.path so `import fieldtriage` works when running this script
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fieldtriage import create_app
from fieldtriage.extensions import db
from fieldtriage.jobs.pipeline import start_pipeline
from fieldtriage.models.user import User
from fieldtriage.services.record_store import RecordStore

# Synchronous end-to-end run (no Redis). Transcription needs OPENAI_API_KEY
# (or DEEPGRAM_API_KEY with TRANSCRIPTION_BACKEND=deepgram) and a real audio
# file given as the first argument.

AUDIO = sys.argv[1] if len(sys.argv) > 1 else None

app = create_app({'JOB_BACKEND': 'sync', 'AUTO_DISPATCH_DELIVERIES': False})
with app.app_context():
    responder = User.query.filter_by(role='responder').first()
    if not responder:
        responder = User(role='responder', username='smoke.emt', first_name='Smoke', last_name='Test')
        db.session.add(responder)
        db.session.commit()
    if not User.query.filter_by(role='reviewer', is_available=True).first():
        db.session.add(User(role='reviewer', username='smoke.doc', first_name='Smoke', last_name='Doctor'))
        db.session.commit()

    if AUDIO is None:
        local_dir = app.config.get('LOCAL_STORAGE_DIR', 'uploads')
        os.makedirs(local_dir, exist_ok=True)
        AUDIO = os.path.join(local_dir, 'smoke_test.wav')
        with open(AUDIO, 'wb') as f:
            f.write(b"RIFF....WAVE")
        print("No audio given; wrote a dummy file (transcription is expected to fail):", AUDIO)

    store = RecordStore()
    sub = store.create(responder.id, "Smoke test: adult male, alert", f"file://{os.path.abspath(AUDIO)}")
    handle = start_pipeline(sub.id)
    sub = store.get(sub.id)
    print("Job:", handle.to_dict())
    print("Submission", sub.id, "status:", sub.status, "risk:", sub.risk_score, "urgency:", sub.urgency_level)
    if sub.error:
        print("Error:", sub.error)
    print("Deliveries:", [d.to_dict() for d in store.list_deliveries_for_submission(sub.id)])
