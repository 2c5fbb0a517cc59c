"""Create demo reviewers and responders (idempotent).

  python scripts/seed_demo.py
"""

import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fieldtriage import create_app
from fieldtriage.extensions import db
from fieldtriage.models.user import User

DEMO_USERS = [
    dict(username='dr.smith', email='dr.smith@hospital.example', role='reviewer',
         first_name='John', last_name='Smith', phone='+15550100001', specialty='Emergency Medicine'),
    dict(username='dr.jones', email='dr.jones@hospital.example', role='reviewer',
         first_name='Sarah', last_name='Jones', phone='+15550100002', specialty='Cardiology'),
    dict(username='emt.wilson', email='emt.wilson@ems.example', role='responder',
         first_name='Mike', last_name='Wilson', phone='+15550100003'),
    dict(username='emt.garcia', email='emt.garcia@ems.example', role='responder',
         first_name='Maria', last_name='Garcia', phone='+15550100004'),
]


def main():
    app = create_app()
    with app.app_context():
        created = 0
        for data in DEMO_USERS:
            if User.query.filter_by(username=data['username']).first():
                continue
            db.session.add(User(**data))
            created += 1
        db.session.commit()
        app.logger.info('Seeded %d demo user(s)', created)
        for u in User.query.order_by(User.id).all():
            print(f"{u.id}\t{u.role}\t{u.username}")


if __name__ == '__main__':
    main()
