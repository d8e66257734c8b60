import os
import tempfile
from datetime import date, timedelta

# Config and the database are created at import time, so the environment
# must be in place before any application module is imported.
_tmpdir = tempfile.mkdtemp(prefix='carpool-tests-')
os.environ.pop('DATABASE_URL', None)
os.environ['SECRET_KEY'] = 'test-secret-key'
os.environ['DATABASE_PATH'] = os.path.join(_tmpdir, 'carpool.db')
os.environ['UPLOAD_FOLDER'] = os.path.join(_tmpdir, 'uploads')
os.environ['GEOCODING_ENABLED'] = 'false'
os.environ['RATELIMIT_ENABLED'] = 'false'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['ADMIN_EMAIL'] = 'admin@example.com'
os.environ['CORS_ORIGINS'] = 'http://localhost:5500'

import pytest  # noqa: E402

import ride_registry  # noqa: E402
from app import app as flask_app  # noqa: E402
from auth import generate_api_token, hash_password  # noqa: E402
from database import db  # noqa: E402

PASSWORD = 'Password1'

TABLES = ('notifications', 'reviews', 'bookings', 'rides', 'api_tokens', 'users')


def future_date(days: int = 3) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


@pytest.fixture(autouse=True)
def clean_db():
    with db.get_connection() as conn:
        cursor = conn.cursor()
        for table in TABLES:
            cursor.execute(f"DELETE FROM {table}")
    yield


@pytest.fixture
def make_user():
    counter = {'n': 0}

    def _make_user(name=None, email=None, phone='+15550000000'):
        counter['n'] += 1
        name = name or f"User {counter['n']}"
        email = email or f"user{counter['n']}@example.com"
        user_id = db.create_user(email, hash_password(PASSWORD), name, phone)
        return db.get_user_by_id(user_id)

    return _make_user


@pytest.fixture
def driver(make_user):
    return make_user('Dana Driver', 'driver@example.com')


@pytest.fixture
def passenger(make_user):
    return make_user('Pat Passenger', 'passenger@example.com')


@pytest.fixture
def other_passenger(make_user):
    return make_user('Olly Other', 'other@example.com')


@pytest.fixture
def admin(make_user):
    return make_user('Ada Admin', 'admin@example.com')


@pytest.fixture
def ride_details():
    def _details(**overrides):
        details = {
            'from': 'Downtown',
            'to': 'Airport',
            'departureDate': future_date(),
            'departureTime': '09:30',
            'availableSeats': 3,
            'pricePerSeat': 12.5,
            'description': 'Leaving from the main square',
            'vehicleModel': 'Toyota Corolla',
            'vehicleNumber': 'ab 12 cd 3456',
        }
        details.update(overrides)
        return details
    return _details


@pytest.fixture
def make_ride(driver, ride_details):
    def _make_ride(owner=None, **overrides):
        return ride_registry.create_ride(owner or driver, ride_details(**overrides))
    return _make_ride


@pytest.fixture
def ride(make_ride):
    return make_ride()


@pytest.fixture
def client():
    flask_app.config['TESTING'] = True
    return flask_app.test_client()


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {'Authorization': f"Bearer {generate_api_token(user['id'])}"}
    return _headers
