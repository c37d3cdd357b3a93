"""
Routes Package
Exports all route blueprints
"""
from smarttryout.routes.auth import auth_bp
from smarttryout.routes.dashboard import dashboard_bp
from smarttryout.routes.teacher import teacher_bp
from smarttryout.routes.student import student_bp
from smarttryout.routes.storage import storage_bp

__all__ = ['auth_bp', 'dashboard_bp', 'teacher_bp', 'student_bp', 'storage_bp']
