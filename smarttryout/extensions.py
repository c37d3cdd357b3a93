"""
Flask Extensions
Centralized extension initialization
"""
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO

# Initialize extensions (without app binding)
# db only backs the local stand-in backend (BACKEND=sql)
db = SQLAlchemy()
socketio = SocketIO()
