import io

import pytest

import bookings
from conftest import PASSWORD, future_date
from database import db


def _ride_payload(**overrides):
    payload = {
        'from': 'Downtown',
        'to': 'Airport',
        'departureDate': future_date(),
        'departureTime': '07:45',
        'availableSeats': 2,
        'pricePerSeat': 10,
        'vehicleModel': 'Honda City',
        'vehicleNumber': 'KA01AB1234',
    }
    payload.update(overrides)
    return payload


class TestAuth:

    def test_signup_then_login(self, client):
        response = client.post('/api/auth/signup', json={
            'name': 'New Rider',
            'email': 'New.Rider@Example.com',
            'phone': '+1 555 123 4567',
            'password': PASSWORD,
        })
        assert response.status_code == 201
        assert response.get_json()['user']['email'] == 'new.rider@example.com'

        response = client.post('/api/auth/login', json={
            'email': 'new.rider@example.com', 'password': PASSWORD
        })
        data = response.get_json()
        assert response.status_code == 200
        assert data['token']
        assert data['user']['name'] == 'New Rider'
        assert data['user']['role'] == 'user'

    def test_signup_validation(self, client):
        response = client.post('/api/auth/signup', json={
            'name': '', 'email': 'not-an-email', 'password': 'short'
        })
        data = response.get_json()
        assert response.status_code == 400
        assert data['code'] == 'validation_error'
        assert len(data['details']) == 3

    def test_duplicate_signup(self, client, passenger):
        response = client.post('/api/auth/signup', json={
            'name': 'Copy', 'email': passenger['email'], 'password': PASSWORD
        })
        assert response.status_code == 409

    def test_admin_role(self, client, admin):
        response = client.post('/api/auth/login', json={'email': admin['email'], 'password': PASSWORD})
        assert response.get_json()['user']['role'] == 'admin'

    def test_wrong_password_and_lockout(self, client, passenger):
        for _ in range(5):
            response = client.post('/api/auth/login', json={
                'email': passenger['email'], 'password': 'Wrong1234'
            })
            assert response.status_code == 401

        response = client.post('/api/auth/login', json={
            'email': passenger['email'], 'password': PASSWORD
        })
        assert response.status_code == 429

    def test_banned_user_cannot_login(self, client, passenger):
        db.ban_user(passenger['id'])
        response = client.post('/api/auth/login', json={
            'email': passenger['email'], 'password': PASSWORD
        })
        assert response.status_code == 403

    def test_missing_and_invalid_token(self, client):
        assert client.get('/api/rides/my-rides').status_code == 401
        response = client.get('/api/rides/my-rides', headers={'Authorization': 'Bearer nope'})
        assert response.status_code == 401

    def test_logout_revokes_token(self, client, passenger, auth_headers):
        headers = auth_headers(passenger)
        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert client.get('/api/users/profile', headers=headers).status_code == 401

    def test_profile_update(self, client, passenger, auth_headers):
        headers = auth_headers(passenger)
        response = client.put('/api/users/profile', headers=headers, json={'name': 'Pat P.'})
        assert response.status_code == 200

        profile = client.get('/api/users/profile', headers=headers).get_json()
        assert profile['name'] == 'Pat P.'
        assert profile['email'] == passenger['email']

        response = client.put('/api/users/profile', headers=headers, json={'phone': '12'})
        assert response.status_code == 400

    @pytest.mark.parametrize('body', [[1], 'hello', 42])
    def test_non_object_bodies_are_rejected(self, client, passenger, auth_headers, body):
        for method, path, headers in (
            (client.post, '/api/auth/signup', None),
            (client.post, '/api/auth/login', None),
            (client.put, '/api/users/profile', auth_headers(passenger)),
        ):
            response = method(path, headers=headers, json=body)
            assert response.status_code == 400, path
            assert response.get_json()['code'] == 'validation_error'


class TestRides:

    def test_create_and_fetch(self, client, driver, auth_headers):
        response = client.post('/api/rides', headers=auth_headers(driver), json=_ride_payload())
        assert response.status_code == 201
        ride = response.get_json()['ride']
        assert ride['from'] == 'Downtown'
        assert ride['availableSeats'] == 2
        assert ride['driver']['name'] == 'Dana Driver'

        fetched = client.get(f"/api/rides/{ride['id']}", headers=auth_headers(driver)).get_json()
        assert fetched['passengers'] == []
        assert fetched['reviews'] == []

    def test_create_with_vehicle_photo(self, client, driver, auth_headers):
        payload = {k: str(v) for k, v in _ride_payload().items()}
        payload['vehiclePhoto'] = (io.BytesIO(b'\x89PNG fake image'), 'car.png')
        response = client.post(
            '/api/rides', headers=auth_headers(driver),
            data=payload, content_type='multipart/form-data'
        )
        assert response.status_code == 201
        assert response.get_json()['ride']['vehiclePhoto'].startswith('uploads/vehicles/')

    def test_photo_extension_is_checked(self, client, driver, auth_headers):
        payload = {k: str(v) for k, v in _ride_payload().items()}
        payload['vehiclePhoto'] = (io.BytesIO(b'MZ'), 'car.exe')
        response = client.post(
            '/api/rides', headers=auth_headers(driver),
            data=payload, content_type='multipart/form-data'
        )
        assert response.status_code == 400

    def test_create_validation(self, client, driver, auth_headers):
        response = client.post('/api/rides', headers=auth_headers(driver),
                               json=_ride_payload(availableSeats=0, pricePerSeat=-5))
        assert response.status_code == 400
        assert len(response.get_json()['details']) == 2

    def test_create_rejects_unstorable_numbers(self, client, driver, auth_headers):
        response = client.post('/api/rides', headers=auth_headers(driver),
                               json=_ride_payload(availableSeats=10 ** 20, pricePerSeat='nan'))
        data = response.get_json()
        assert response.status_code == 400
        assert data['code'] == 'validation_error'
        assert len(data['details']) == 2
        assert db.get_rides_by_driver(driver['id']) == []

    @pytest.mark.parametrize('path, as_driver', [
        ('/api/rides', True),
        ('/api/rides/{id}/book', False),
        ('/api/rides/{id}/accept', True),
        ('/api/rides/{id}/reject', True),
        ('/api/rides/{id}/review', False),
    ])
    def test_json_body_must_be_an_object(self, client, ride, driver, passenger, auth_headers,
                                         path, as_driver):
        headers = auth_headers(driver if as_driver else passenger)
        response = client.post(path.format(id=ride['id']), headers=headers, json=[1])
        assert response.status_code == 400
        assert response.get_json()['code'] == 'validation_error'

    def test_unicode_superscript_seats(self, client, ride, passenger, auth_headers):
        response = client.post(f"/api/rides/{ride['id']}/book",
                               headers=auth_headers(passenger), json={'seats': '²'})
        assert response.status_code == 400
        assert db.get_bookings_by_ride(ride['id']) == []

    def test_unknown_ride(self, client, driver, auth_headers):
        response = client.get('/api/rides/9999', headers=auth_headers(driver))
        assert response.status_code == 404
        assert response.get_json()['code'] == 'not_found'

    def test_search_shape(self, client, ride, passenger, auth_headers):
        response = client.get('/api/rides/search?from=downtown&to=airport',
                              headers=auth_headers(passenger))
        data = response.get_json()
        assert response.status_code == 200
        assert [r['id'] for r in data['exactMatches']] == [ride['id']]
        assert data['nearbyMatches'] == []

    def test_booking_flow(self, client, ride, driver, passenger, auth_headers):
        driver_headers = auth_headers(driver)
        passenger_headers = auth_headers(passenger)

        response = client.post(f"/api/rides/{ride['id']}/book", headers=passenger_headers,
                               json={'seats': 2})
        assert response.status_code == 201

        response = client.post(f"/api/rides/{ride['id']}/accept", headers=driver_headers,
                               json={'passengerId': passenger['id']})
        assert response.status_code == 200

        response = client.post(f"/api/rides/{ride['id']}/reject", headers=driver_headers,
                               json={'passengerId': passenger['id']})
        assert response.status_code == 409
        assert response.get_json()['code'] == 'state_error'

        [mine] = client.get('/api/rides/my-rides', headers=driver_headers).get_json()
        assert mine['availableSeats'] == 1
        assert mine['passengers'][0]['status'] == 'accepted'
        assert mine['passengers'][0]['bookedSeats'] == 2

        [booked] = client.get('/api/rides/my-bookings', headers=passenger_headers).get_json()
        assert booked['userBookingStatus'] == 'accepted'
        assert booked['userBookedSeats'] == 2

        assert client.get('/api/notifications/unread-count',
                          headers=passenger_headers).get_json() == {'count': 1}

    def test_capacity_and_authorization_mapping(self, client, ride, driver, passenger, auth_headers):
        response = client.post(f"/api/rides/{ride['id']}/book", headers=auth_headers(passenger),
                               json={'seats': 10})
        assert response.status_code == 409
        assert response.get_json()['code'] == 'capacity_error'

        response = client.post(f"/api/rides/{ride['id']}/book", headers=auth_headers(driver), json={})
        assert response.status_code == 403

    def test_decision_requires_passenger_id(self, client, ride, driver, auth_headers):
        response = client.post(f"/api/rides/{ride['id']}/accept", headers=auth_headers(driver), json={})
        assert response.status_code == 400

    def test_cancel_own_booking(self, client, ride, passenger, auth_headers):
        headers = auth_headers(passenger)
        client.post(f"/api/rides/{ride['id']}/book", headers=headers, json={})

        response = client.post(f"/api/rides/{ride['id']}/cancel", headers=headers)
        assert response.status_code == 200
        assert db.get_bookings_by_ride(ride['id']) == []

    def test_complete_review_and_list(self, client, ride, driver, passenger, auth_headers):
        bookings.request_booking(ride['id'], passenger)
        bookings.decide_booking(ride['id'], driver, passenger['id'], bookings.ACCEPT)

        response = client.post(f"/api/rides/{ride['id']}/complete", headers=auth_headers(driver))
        assert response.status_code == 200
        assert response.get_json()['ride']['status'] == 'completed'

        headers = auth_headers(passenger)
        response = client.post(f"/api/rides/{ride['id']}/review", headers=headers,
                               json={'rating': 5, 'comment': 'Great'})
        assert response.status_code == 201

        response = client.post(f"/api/rides/{ride['id']}/review", headers=headers,
                               json={'rating': 4})
        assert response.status_code == 409
        assert response.get_json()['code'] == 'conflict'

        data = client.get(f"/api/rides/{ride['id']}/reviews", headers=headers).get_json()
        assert data['averageRating'] == 5.0
        assert data['reviews'][0]['user']['name'] == 'Pat Passenger'

    def test_cancel_ride(self, client, ride, driver, auth_headers):
        response = client.post(f"/api/rides/{ride['id']}/cancel-ride", headers=auth_headers(driver))
        assert response.status_code == 200
        assert response.get_json()['ride']['status'] == 'cancelled'

    def test_delete_blocked_by_accepted_passenger(self, client, ride, driver, passenger, auth_headers):
        bookings.request_booking(ride['id'], passenger)
        bookings.decide_booking(ride['id'], driver, passenger['id'], bookings.ACCEPT)

        response = client.delete(f"/api/rides/{ride['id']}", headers=auth_headers(driver))
        assert response.status_code == 409


class TestNotifications:

    def test_list_and_read_all(self, client, ride, driver, passenger, auth_headers):
        bookings.request_booking(ride['id'], passenger)
        headers = auth_headers(driver)

        listed = client.get('/api/notifications', headers=headers).get_json()
        assert listed[0]['type'] == 'booking_request'
        assert listed[0]['isRead'] is False

        assert client.put('/api/notifications/read-all', headers=headers).status_code == 200
        assert client.get('/api/notifications/unread-count', headers=headers).get_json() == {'count': 0}


class TestAdmin:

    def test_requires_admin(self, client, passenger, auth_headers):
        assert client.get('/api/admin/stats', headers=auth_headers(passenger)).status_code == 403

    def test_stats_and_lists(self, client, ride, admin, auth_headers):
        headers = auth_headers(admin)

        stats = client.get('/api/admin/stats', headers=headers).get_json()['stats']
        assert stats['total_rides'] == 1
        assert stats['active_rides'] == 1

        rides = client.get('/api/admin/rides?status=active', headers=headers).get_json()
        assert [r['id'] for r in rides['rides']] == [ride['id']]
        assert rides['pagination']['total'] == 1

        assert client.get('/api/admin/rides?status=lost', headers=headers).status_code == 400

        users = client.get('/api/admin/users?search=driver', headers=headers).get_json()
        assert [u['email'] for u in users['users']] == ['driver@example.com']

    def test_ban_and_unban(self, client, passenger, admin, auth_headers):
        passenger_headers = auth_headers(passenger)
        headers = auth_headers(admin)

        response = client.post(f"/api/admin/users/{passenger['id']}/ban", headers=headers)
        assert response.status_code == 200
        # Banning revokes existing tokens
        assert client.get('/api/users/profile', headers=passenger_headers).status_code == 401

        response = client.post(f"/api/admin/users/{passenger['id']}/unban", headers=headers)
        assert response.status_code == 200
        assert db.get_user_by_id(passenger['id'])['is_banned'] == 0

    def test_cannot_ban_self(self, client, admin, auth_headers):
        response = client.post(f"/api/admin/users/{admin['id']}/ban", headers=auth_headers(admin))
        assert response.status_code == 403

    def test_delete_user_bans(self, client, passenger, admin, auth_headers):
        response = client.delete(f"/api/admin/users/{passenger['id']}", headers=auth_headers(admin))
        assert response.status_code == 200
        assert db.get_user_by_id(passenger['id'])['is_banned'] == 1

    def test_cancel_and_delete_ride(self, client, make_ride, admin, auth_headers):
        headers = auth_headers(admin)
        cancelled = make_ride()
        deleted = make_ride()

        response = client.post(f"/api/admin/rides/{cancelled['id']}/cancel", headers=headers)
        assert response.status_code == 200
        assert db.get_ride_by_id(cancelled['id'])['status'] == 'cancelled'

        response = client.delete(f"/api/admin/rides/{deleted['id']}", headers=headers)
        assert response.status_code == 200
        assert db.get_ride_by_id(deleted['id']) is None


def test_cors_headers(client, passenger, auth_headers):
    response = client.get('/api/users/profile', headers={
        **auth_headers(passenger), 'Origin': 'http://localhost:5500'
    })
    assert response.headers['Access-Control-Allow-Origin'] == 'http://localhost:5500'

    response = client.get('/api/users/profile', headers={
        **auth_headers(passenger), 'Origin': 'http://evil.example'
    })
    assert 'Access-Control-Allow-Origin' not in response.headers


def test_preflight(client):
    response = client.options('/api/rides', headers={'Origin': 'http://localhost:5500'})
    assert response.status_code == 200
    assert 'POST' in response.headers['Access-Control-Allow-Methods']


@pytest.mark.parametrize('path', ['/api/nothing-here', '/api/rides/abc'])
def test_unknown_routes_are_json(client, path):
    response = client.get(path)
    assert response.status_code == 404
    assert response.get_json() == {'error': 'Not found'}
