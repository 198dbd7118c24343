import json
import os
import sys
import time

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Must be set before config.py is imported
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["RATELIMIT_ENABLED"] = "0"
os.environ["SESSION_COOKIE_SECURE"] = "0"
os.environ["TRUST_PROXY"] = "0"
os.environ["ENABLE_SCHEDULER"] = "0"
os.environ["ADMIN_PASSWORD"] = "letmein"
os.environ["CRON_SECRET_KEY"] = "cron-secret"
os.environ["STRIPE_SECRET_KEY_MAHAD"] = "sk_test_mahad"
os.environ["STRIPE_SECRET_KEY_DUGSI"] = "sk_test_dugsi"
os.environ["STRIPE_WEBHOOK_SECRET_MAHAD"] = "whsec_mahad"
os.environ["STRIPE_WEBHOOK_SECRET_DUGSI"] = "whsec_dugsi"
os.environ["MAIL_SERVER"] = ""

from app import app as flask_app  # noqa: E402
from extensions import db  # noqa: E402
from models import (  # noqa: E402
    AccountType,
    BillingAccount,
    Program,
    ProgramProfile,
    Subscription,
    SubscriptionStatus,
)
from utils.enrollment import create_enrollment  # noqa: E402
from utils.people import create_person  # noqa: E402
from utils.stripe_api import sign_payload  # noqa: E402


@pytest.fixture
def app():
    flask_app.testing = True
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture
def admin_client(app):
    with app.test_client() as c:
        r = c.post('/auth/login', json={"password": "letmein"})
        assert r.status_code == 200
        yield c


@pytest.fixture
def make_student(app):
    """Person + ProgramProfile (+ optional enrollment), committed."""

    def _make(name="Amina Hassan", email=None, phone=None, program=Program.MAHAD, status=None,
              batch_id=None, date_of_birth=None, school_id=None, **profile_fields):
        person = create_person(name, email, phone, date_of_birth, school_id)
        profile = ProgramProfile(person_id=person.id, program=program, **profile_fields)
        db.session.add(profile)
        db.session.flush()
        if status:
            create_enrollment(profile.id, batch_id=batch_id, status=status)
        db.session.commit()
        return profile

    return _make


@pytest.fixture
def make_subscription(app):
    def _make(person_id, stripe_id="sub_123", customer_id="cus_123", status=SubscriptionStatus.ACTIVE,
              amount=12000, account_type=AccountType.MAHAD):
        account = BillingAccount(person_id=person_id, account_type=account_type)
        account.customer_id = customer_id
        db.session.add(account)
        db.session.flush()
        sub = Subscription(billing_account_id=account.id, stripe_subscription_id=stripe_id,
                           stripe_customer_id=customer_id, status=status, amount=amount)
        db.session.add(sub)
        db.session.commit()
        return sub

    return _make


@pytest.fixture
def post_webhook(client):
    """Sign and deliver an event to /webhook/<source>."""

    def _post(event, source="mahad", secret=None, timestamp=None):
        payload = json.dumps(event)
        secret = secret or f"whsec_{source}"
        header = sign_payload(payload, secret, timestamp or int(time.time()))
        return client.post(
            f'/webhook/{source}',
            data=payload,
            headers={"Stripe-Signature": header, "Content-Type": "application/json"},
        )

    return _post


@pytest.fixture
def stripe_event():
    def _event(event_type, obj, event_id="evt_1"):
        return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}

    return _event
