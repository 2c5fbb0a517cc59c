from flask import jsonify, request
from werkzeug.exceptions import HTTPException


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def json_http_error(e):
        # JSON bodies for the API; keep default pages elsewhere
        if not request.path.startswith('/api/'):
            return e.get_response()
        message = e.description
        if e.code == 413:
            message = 'Audio file exceeds the upload size limit'
        return jsonify({"error": message}), e.code
