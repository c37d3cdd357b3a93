# seed_db.py
"""
Create the local backend's tables and seed accounts / schools.

    BACKEND=sql python seed_db.py --teacher teacher@school.id:secret:"Bu Ani"
    BACKEND=sql python seed_db.py --student budi@school.id:secret:Budi --school "SMA Negeri 1"
"""
import argparse
import sys

from werkzeug.security import generate_password_hash

from smarttryout import create_app
from smarttryout.extensions import db
from smarttryout.models import Profile, School, User


def parse_account(value):
    parts = value.split(':', 2)
    if len(parts) < 2:
        raise argparse.ArgumentTypeError('expected email:password[:full name]')
    email, password = parts[0].strip().lower(), parts[1]
    full_name = parts[2] if len(parts) == 3 else email.split('@')[0]
    return email, password, full_name


def upsert_account(email, password, full_name, role):
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, password_hash=generate_password_hash(password))
        db.session.add(user)
        db.session.flush()
        print(f"  ✅ Added {role} {email}")
    else:
        user.password_hash = generate_password_hash(password)
        print(f"  - {email} exists, password updated")

    profile = db.session.get(Profile, user.id)
    if profile is None:
        profile = Profile(id=user.id)
        db.session.add(profile)
    profile.full_name = full_name
    profile.role = role


def seed_database(argv=None):
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('--teacher', action='append', type=parse_account, default=[])
    parser.add_argument('--student', action='append', type=parse_account, default=[])
    parser.add_argument('--school', action='append', default=[])
    args = parser.parse_args(argv)

    app = create_app()
    if app.config['BACKEND'] != 'sql':
        print("❌ Seeding only applies to the local backend (set BACKEND=sql)")
        return 1

    with app.app_context():
        print(f"\n{'='*50}")
        print("SEEDING LOCAL BACKEND")
        print(f"{'='*50}")

        for name in args.school:
            if School.query.filter_by(name=name).first() is None:
                db.session.add(School(name=name))
                print(f"  ✅ Added school {name}")
            else:
                print(f"  - school {name} exists")

        for email, password, full_name in args.teacher:
            upsert_account(email, password, full_name, 'teacher')
        for email, password, full_name in args.student:
            upsert_account(email, password, full_name, 'student')

        db.session.commit()
        print(f"{'='*50}\n")
    return 0


if __name__ == '__main__':
    sys.exit(seed_database())
