"""
Storage Routes
Public file URLs for the local stand-in backend's buckets
"""
import os

from flask import Blueprint, abort, current_app, send_from_directory
from werkzeug.utils import secure_filename

storage_bp = Blueprint('storage', __name__)


@storage_bp.route('/storage/v1/object/public/<bucket>/<path:path>')
def public_file(bucket, path):
    if current_app.config['BACKEND'] != 'sql':
        abort(404)
    parts = [secure_filename(part) for part in path.split('/') if part]
    if not parts:
        abort(404)
    directory = os.path.join(current_app.config['STORAGE_ROOT'], secure_filename(bucket), *parts[:-1])
    return send_from_directory(directory, parts[-1])
