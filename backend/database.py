"""
Carpool Platform - Database Module

This module handles all database operations using SQLite3 or PostgreSQL.
The database is self-initializing - it creates all tables, indexes,
and constraints on first run if they don't exist.

Ride mutations (bookings, decisions, status changes) go through
`Database.transaction()`, which holds the ride's write lock for the whole
read-modify-write so seat counts are re-checked right before commit.
"""

import datetime as dt
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from config import config

# PostgreSQL support
try:
    import psycopg2
    import psycopg2.extras
    HAS_POSTGRES = True
except ImportError:
    HAS_POSTGRES = False

logger = logging.getLogger(__name__)


# Ride columns plus everything derived from bookings and reviews.
# Available seats and ratings are never stored.
RIDE_SELECT = """
    SELECT r.*, u.full_name AS driver_name, u.email AS driver_email,
           u.phone AS driver_phone,
           (SELECT COALESCE(SUM(b.seats), 0) FROM bookings b
             WHERE b.ride_id = r.id AND b.status = 'accepted') AS accepted_seats,
           (SELECT AVG(rv.rating) FROM reviews rv WHERE rv.ride_id = r.id) AS average_rating,
           (SELECT COUNT(*) FROM reviews rv WHERE rv.ride_id = r.id) AS review_count
    FROM rides r
    JOIN users u ON r.driver_id = u.id
"""


def _serialize_row(row) -> Dict[str, Any]:
    """Convert a database row into a JSON friendly dict."""
    record = dict(row)
    for k, v in record.items():
        if isinstance(v, (dt.datetime, dt.date)):
            record[k] = v.isoformat()
        elif isinstance(v, dt.time):
            record[k] = v.strftime('%H:%M')
    return record


def _ride_row(row) -> Dict[str, Any]:
    ride = _serialize_row(row)
    ride['accepted_seats'] = int(ride.get('accepted_seats') or 0)
    ride['available_seats'] = ride['total_seats'] - ride['accepted_seats']
    avg = ride.get('average_rating')
    ride['average_rating'] = round(float(avg), 1) if avg else 0.0
    ride['review_count'] = int(ride.get('review_count') or 0)
    return ride


class Database:
    """
    Database handler for the Carpool platform.

    All methods use parameterized queries to prevent SQL injection.
    The database is automatically initialized on first use.
    Supports both SQLite (local) and PostgreSQL (production).
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
                     Defaults to config.DATABASE_PATH.
                     If DATABASE_URL environment variable is set, uses PostgreSQL instead.
        """
        database_url = os.environ.get('DATABASE_URL')

        if database_url and HAS_POSTGRES:
            self.use_postgres = True
            self.db_url = database_url
            # Render/Heroku use postgres:// but psycopg2 needs postgresql://
            if self.db_url.startswith('postgres://'):
                self.db_url = self.db_url.replace('postgres://', 'postgresql://', 1)
            self.db_path = None
        else:
            self.use_postgres = False
            self.db_path = db_path or config.DATABASE_PATH
            self.db_url = None

        self._init_database()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        Ensures connections are properly closed after use.
        Handles both PostgreSQL and SQLite.
        """
        if self.use_postgres:
            conn = psycopg2.connect(self.db_url)
            conn.set_session(autocommit=False)
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()
        else:
            conn = sqlite3.connect(self.db_path, timeout=30)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    @contextmanager
    def transaction(self):
        """
        Write transaction yielding a cursor.

        SQLite takes the database write lock up front (BEGIN IMMEDIATE) so two
        concurrent decisions on the same ride serialize; PostgreSQL relies on
        `lock_ride()` issuing SELECT ... FOR UPDATE. Any exception rolls back.
        """
        if self.use_postgres:
            with self.get_connection() as conn:
                yield self._get_cursor(conn)
            return

        conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn.cursor()
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _get_cursor(self, conn):
        """Get a cursor with proper row factory for both databases."""
        if self.use_postgres:
            return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        else:
            return conn.cursor()

    def _placeholder(self):
        """Get the correct placeholder for parameterized queries."""
        return '%s' if self.use_postgres else '?'

    def _timestamp(self, value: datetime):
        """Timestamps are bound as datetimes on PostgreSQL, as text on SQLite."""
        return value if self.use_postgres else value.strftime('%Y-%m-%d %H:%M:%S')

    def _count(self, cursor) -> int:
        row = cursor.fetchone()
        return row['count'] if self.use_postgres else row[0]

    def _inserted_id(self, cursor) -> Optional[int]:
        if not self.use_postgres:
            return cursor.lastrowid
        cursor.execute("SELECT lastval() AS id")
        row = cursor.fetchone()
        return row['id'] if row else None

    def _init_database(self):
        """
        Initialize the database schema if it doesn't exist.
        Creates all tables, constraints, and indexes.
        """
        if self.use_postgres:
            pk = 'SERIAL PRIMARY KEY'
            ts = 'TIMESTAMP'
            date_type, time_type = 'DATE', 'TIME'
        else:
            pk = 'INTEGER PRIMARY KEY AUTOINCREMENT'
            ts = 'DATETIME'
            date_type, time_type = 'TEXT', 'TEXT'

        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)

            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS users (
                    id {pk},
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    full_name TEXT NOT NULL,
                    phone TEXT,
                    is_admin INTEGER DEFAULT 0,
                    is_banned INTEGER DEFAULT 0,
                    created_at {ts} DEFAULT CURRENT_TIMESTAMP,
                    last_login {ts},
                    login_attempts INTEGER DEFAULT 0,
                    lockout_until {ts}
                )
            """)

            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS rides (
                    id {pk},
                    driver_id INTEGER NOT NULL,
                    origin TEXT NOT NULL,
                    destination TEXT NOT NULL,
                    origin_lat REAL,
                    origin_lng REAL,
                    destination_lat REAL,
                    destination_lng REAL,
                    departure_date {date_type} NOT NULL,
                    departure_time {time_type} NOT NULL,
                    total_seats INTEGER NOT NULL CHECK (total_seats >= 1),
                    price_per_seat REAL NOT NULL CHECK (price_per_seat >= 0),
                    description TEXT,
                    vehicle_model TEXT,
                    vehicle_number TEXT,
                    vehicle_photo TEXT,
                    status TEXT DEFAULT 'active' CHECK (status IN ('active', 'completed', 'cancelled')),
                    created_at {ts} DEFAULT CURRENT_TIMESTAMP,
                    updated_at {ts},
                    FOREIGN KEY (driver_id) REFERENCES users(id)
                )
            """)

            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS bookings (
                    id {pk},
                    ride_id INTEGER NOT NULL,
                    passenger_id INTEGER NOT NULL,
                    seats INTEGER NOT NULL DEFAULT 1 CHECK (seats >= 1),
                    status TEXT DEFAULT 'pending' CHECK (status IN ('pending', 'accepted', 'rejected')),
                    created_at {ts} DEFAULT CURRENT_TIMESTAMP,
                    updated_at {ts},
                    FOREIGN KEY (ride_id) REFERENCES rides(id) ON DELETE CASCADE,
                    FOREIGN KEY (passenger_id) REFERENCES users(id),
                    UNIQUE (ride_id, passenger_id)
                )
            """)

            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS reviews (
                    id {pk},
                    ride_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    rating INTEGER NOT NULL CHECK (rating >= 1 AND rating <= 5),
                    comment TEXT,
                    created_at {ts} DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (ride_id) REFERENCES rides(id) ON DELETE CASCADE,
                    FOREIGN KEY (user_id) REFERENCES users(id),
                    UNIQUE (ride_id, user_id)
                )
            """)

            # ride_id is informational only, notifications outlive deleted rides
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS notifications (
                    id {pk},
                    user_id INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    message TEXT NOT NULL,
                    ride_id INTEGER,
                    is_read INTEGER DEFAULT 0,
                    created_at {ts} DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            """)

            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS api_tokens (
                    id {pk},
                    token TEXT UNIQUE NOT NULL,
                    user_id INTEGER NOT NULL,
                    expires_at {ts} NOT NULL,
                    created_at {ts} DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            """)

            indexes = [
                "CREATE INDEX IF NOT EXISTS idx_rides_driver_id ON rides(driver_id)",
                "CREATE INDEX IF NOT EXISTS idx_rides_status_date ON rides(status, departure_date)",
                "CREATE INDEX IF NOT EXISTS idx_bookings_ride_id ON bookings(ride_id)",
                "CREATE INDEX IF NOT EXISTS idx_bookings_passenger_id ON bookings(passenger_id)",
                "CREATE INDEX IF NOT EXISTS idx_reviews_ride_id ON reviews(ride_id)",
                "CREATE INDEX IF NOT EXISTS idx_notifications_user_read ON notifications(user_id, is_read)",
                "CREATE INDEX IF NOT EXISTS idx_api_tokens_user_id ON api_tokens(user_id)",
            ]
            for index_sql in indexes:
                cursor.execute(index_sql)

    # =========================================================================
    # User Operations
    # =========================================================================

    def create_user(
        self,
        email: str,
        password_hash: str,
        full_name: str,
        phone: Optional[str] = None
    ) -> int:
        """
        Create a new user account.

        Returns:
            The ID of the newly created user.
        """
        is_admin = 1 if config.ADMIN_EMAIL and email.lower() == config.ADMIN_EMAIL.lower() else 0

        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                INSERT INTO users (email, password_hash, full_name, phone, is_admin)
                VALUES ({p}, {p}, {p}, {p}, {p})
            """, (email.lower(), password_hash, full_name, phone, is_admin))
            return self._inserted_id(cursor)

    def get_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Get a user by their ID."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"SELECT * FROM users WHERE id = {p}", (user_id,))
            row = cursor.fetchone()
            return _serialize_row(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Get a user by their email address."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"SELECT * FROM users WHERE email = {p}", (email.lower(),))
            row = cursor.fetchone()
            return _serialize_row(row) if row else None

    def update_user(self, user_id: int, **kwargs) -> bool:
        """Update the editable profile fields of a user."""
        allowed_fields = {'full_name', 'phone'}
        fields = {k: v for k, v in kwargs.items() if k in allowed_fields}

        if not fields:
            return False

        p = self._placeholder()
        set_clause = ', '.join([f"{k} = {p}" for k in fields.keys()])
        values = list(fields.values()) + [user_id]

        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            cursor.execute(f"UPDATE users SET {set_clause} WHERE id = {p}", tuple(values))
            return cursor.rowcount > 0

    def set_user_admin(self, user_id: int, is_admin: bool) -> bool:
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"UPDATE users SET is_admin = {p} WHERE id = {p}", (1 if is_admin else 0, user_id))
            return cursor.rowcount > 0

    def update_last_login(self, user_id: int) -> bool:
        """Update the last login timestamp for a user."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"UPDATE users SET last_login = CURRENT_TIMESTAMP WHERE id = {p}", (user_id,))
            return cursor.rowcount > 0

    def increment_login_attempts(self, user_id: int) -> int:
        """Increment failed login attempts and return the new count."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"UPDATE users SET login_attempts = login_attempts + 1 WHERE id = {p}", (user_id,))
            cursor.execute(f"SELECT login_attempts FROM users WHERE id = {p}", (user_id,))
            row = cursor.fetchone()
            return row['login_attempts'] if row else 0

    def reset_login_attempts(self, user_id: int) -> bool:
        """Reset login attempts after successful login."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"UPDATE users SET login_attempts = 0, lockout_until = NULL WHERE id = {p}", (user_id,))
            return cursor.rowcount > 0

    def set_user_lockout(self, user_id: int, until: datetime) -> bool:
        """Lock a user account until the specified time."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"UPDATE users SET lockout_until = {p} WHERE id = {p}", (self._timestamp(until), user_id))
            return cursor.rowcount > 0

    def ban_user(self, user_id: int) -> bool:
        """Ban a user and revoke their tokens."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"UPDATE users SET is_banned = 1 WHERE id = {p}", (user_id,))
            banned = cursor.rowcount > 0
            cursor.execute(f"DELETE FROM api_tokens WHERE user_id = {p}", (user_id,))
            return banned

    def unban_user(self, user_id: int) -> bool:
        """Unban a user."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"UPDATE users SET is_banned = 0 WHERE id = {p}", (user_id,))
            return cursor.rowcount > 0

    def get_all_users(
        self,
        page: int = 1,
        per_page: int = 20,
        search: Optional[str] = None,
        filter_banned: Optional[bool] = None
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Get all users with pagination and filters.

        Returns:
            Tuple of (list of users, total count)
        """
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()

            conditions = []
            params = []

            if search:
                conditions.append(f"(full_name LIKE {p} OR email LIKE {p})")
                search_term = f"%{search}%"
                params.extend([search_term, search_term])

            if filter_banned is not None:
                conditions.append(f"is_banned = {p}")
                params.append(1 if filter_banned else 0)

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"SELECT COUNT(*) as count FROM users WHERE {where_clause}", tuple(params))
            total = self._count(cursor)

            offset = (page - 1) * per_page
            cursor.execute(f"""
                SELECT id, email, full_name, phone, is_admin, is_banned,
                       created_at, last_login
                FROM users
                WHERE {where_clause}
                ORDER BY created_at DESC, id DESC
                LIMIT {p} OFFSET {p}
            """, tuple(params + [per_page, offset]))

            users = [_serialize_row(row) for row in cursor.fetchall()]
            return users, total

    # =========================================================================
    # Ride Operations
    # =========================================================================

    def create_ride(
        self,
        driver_id: int,
        origin: str,
        destination: str,
        departure_date: str,
        departure_time: str,
        total_seats: int,
        price_per_seat: float,
        origin_lat: Optional[float] = None,
        origin_lng: Optional[float] = None,
        destination_lat: Optional[float] = None,
        destination_lng: Optional[float] = None,
        description: Optional[str] = None,
        vehicle_model: Optional[str] = None,
        vehicle_number: Optional[str] = None,
        vehicle_photo: Optional[str] = None
    ) -> int:
        """
        Create a new ride in status 'active'.

        Returns:
            The ID of the newly created ride.
        """
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                INSERT INTO rides (
                    driver_id, origin, destination, departure_date, departure_time,
                    total_seats, price_per_seat, origin_lat, origin_lng,
                    destination_lat, destination_lng, description,
                    vehicle_model, vehicle_number, vehicle_photo
                ) VALUES ({p}, {p}, {p}, {p}, {p}, {p}, {p}, {p}, {p}, {p}, {p}, {p}, {p}, {p}, {p})
            """, (
                driver_id, origin, destination, departure_date, departure_time,
                total_seats, price_per_seat, origin_lat, origin_lng,
                destination_lat, destination_lng, description,
                vehicle_model, vehicle_number, vehicle_photo
            ))
            return self._inserted_id(cursor)

    def get_ride_by_id(self, ride_id: int) -> Optional[Dict[str, Any]]:
        """Get a ride by its ID, including driver information and seat counts."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"{RIDE_SELECT} WHERE r.id = {p}", (ride_id,))
            row = cursor.fetchone()
            return _ride_row(row) if row else None

    def get_rides_by_driver(self, driver_id: int) -> List[Dict[str, Any]]:
        """Get all rides posted by a specific driver."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                {RIDE_SELECT}
                WHERE r.driver_id = {p}
                ORDER BY r.departure_date DESC, r.departure_time DESC
            """, (driver_id,))
            return [_ride_row(row) for row in cursor.fetchall()]

    def get_rides_by_passenger(self, passenger_id: int) -> List[Dict[str, Any]]:
        """
        Get every ride the user holds a booking on, with that booking's
        status and seats and whether the user already reviewed the ride.
        """
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                SELECT ride.*, b.status AS booking_status, b.seats AS booked_seats,
                       b.created_at AS booked_at,
                       (SELECT COUNT(*) FROM reviews rv
                         WHERE rv.ride_id = ride.id AND rv.user_id = {p}) AS has_reviewed
                FROM ({RIDE_SELECT}) ride
                JOIN bookings b ON b.ride_id = ride.id
                WHERE b.passenger_id = {p}
                ORDER BY ride.departure_date DESC, ride.departure_time DESC
            """, (passenger_id, passenger_id))
            rides = []
            for row in cursor.fetchall():
                ride = _ride_row(row)
                ride['has_reviewed'] = bool(ride['has_reviewed'])
                rides.append(ride)
            return rides

    def search_rides(
        self,
        today: str,
        departure_date: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        """
        Active rides departing on or after `today`, filtered by the
        non-location criteria. Location matching happens in the registry.
        """
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()

            conditions = ["r.status = 'active'", f"r.departure_date >= {p}"]
            params: List[Any] = [today]

            if departure_date:
                conditions.append(f"r.departure_date = {p}")
                params.append(departure_date)

            if min_price is not None:
                conditions.append(f"r.price_per_seat >= {p}")
                params.append(min_price)

            if max_price is not None:
                conditions.append(f"r.price_per_seat <= {p}")
                params.append(max_price)

            where_clause = " AND ".join(conditions)
            cursor.execute(f"""
                {RIDE_SELECT}
                WHERE {where_clause}
                ORDER BY r.departure_date ASC, r.departure_time ASC
            """, tuple(params))
            return [_ride_row(row) for row in cursor.fetchall()]

    def get_all_rides(
        self,
        page: int = 1,
        per_page: int = 20,
        status: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Get all rides with pagination (for admin)."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()

            conditions = []
            params = []

            if status:
                conditions.append(f"r.status = {p}")
                params.append(status)

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"SELECT COUNT(*) as count FROM rides r WHERE {where_clause}", tuple(params))
            total = self._count(cursor)

            offset = (page - 1) * per_page
            cursor.execute(f"""
                {RIDE_SELECT}
                WHERE {where_clause}
                ORDER BY r.created_at DESC, r.id DESC
                LIMIT {p} OFFSET {p}
            """, tuple(params + [per_page, offset]))

            return [_ride_row(row) for row in cursor.fetchall()], total

    # -------------------------------------------------------------------------
    # Locked ride primitives (use inside `transaction()`)
    # -------------------------------------------------------------------------

    def lock_ride(self, cursor, ride_id: int) -> Optional[Dict[str, Any]]:
        """Read a ride row, holding its lock until the transaction ends."""
        p = self._placeholder()
        lock = " FOR UPDATE" if self.use_postgres else ""
        cursor.execute(f"SELECT * FROM rides WHERE id = {p}{lock}", (ride_id,))
        row = cursor.fetchone()
        return _serialize_row(row) if row else None

    def accepted_seats(self, cursor, ride_id: int) -> int:
        """Sum of seats over accepted bookings of a ride."""
        p = self._placeholder()
        cursor.execute(f"""
            SELECT COALESCE(SUM(seats), 0) AS count FROM bookings
            WHERE ride_id = {p} AND status = 'accepted'
        """, (ride_id,))
        return int(self._count(cursor))

    def set_ride_status(self, cursor, ride_id: int, from_status: str, to_status: str) -> bool:
        """Move a ride between statuses; False if it was not in `from_status`."""
        p = self._placeholder()
        cursor.execute(f"""
            UPDATE rides SET status = {p}, updated_at = CURRENT_TIMESTAMP
            WHERE id = {p} AND status = {p}
        """, (to_status, ride_id, from_status))
        return cursor.rowcount > 0

    def delete_ride(self, cursor, ride_id: int) -> bool:
        """Delete a ride with its bookings and reviews."""
        p = self._placeholder()
        cursor.execute(f"DELETE FROM reviews WHERE ride_id = {p}", (ride_id,))
        cursor.execute(f"DELETE FROM bookings WHERE ride_id = {p}", (ride_id,))
        cursor.execute(f"DELETE FROM rides WHERE id = {p}", (ride_id,))
        return cursor.rowcount > 0

    # =========================================================================
    # Booking Operations
    # =========================================================================

    def find_booking(self, cursor, ride_id: int, passenger_id: int) -> Optional[Dict[str, Any]]:
        """Get the passenger entry of a user on a ride."""
        p = self._placeholder()
        cursor.execute(f"""
            SELECT * FROM bookings WHERE ride_id = {p} AND passenger_id = {p}
        """, (ride_id, passenger_id))
        row = cursor.fetchone()
        return _serialize_row(row) if row else None

    def insert_booking(self, cursor, ride_id: int, passenger_id: int, seats: int) -> int:
        """Append a pending passenger entry to a ride."""
        p = self._placeholder()
        cursor.execute(f"""
            INSERT INTO bookings (ride_id, passenger_id, seats)
            VALUES ({p}, {p}, {p})
        """, (ride_id, passenger_id, seats))
        return self._inserted_id(cursor)

    def set_booking_status(self, cursor, booking_id: int, from_status: str, to_status: str) -> bool:
        """Change a booking's status; False if it was not in `from_status`."""
        p = self._placeholder()
        cursor.execute(f"""
            UPDATE bookings SET status = {p}, updated_at = CURRENT_TIMESTAMP
            WHERE id = {p} AND status = {p}
        """, (to_status, booking_id, from_status))
        return cursor.rowcount > 0

    def delete_booking(self, cursor, booking_id: int, status: str) -> bool:
        """Remove a booking that is still in `status`."""
        p = self._placeholder()
        cursor.execute(f"DELETE FROM bookings WHERE id = {p} AND status = {p}", (booking_id, status))
        return cursor.rowcount > 0

    def passenger_ids(self, cursor, ride_id: int, statuses: Tuple[str, ...]) -> List[int]:
        """User ids of the passengers of a ride in any of `statuses`."""
        p = self._placeholder()
        marks = ', '.join([p] * len(statuses))
        cursor.execute(f"""
            SELECT passenger_id FROM bookings
            WHERE ride_id = {p} AND status IN ({marks})
            ORDER BY created_at ASC, id ASC
        """, (ride_id, *statuses))
        return [row['passenger_id'] for row in cursor.fetchall()]

    def get_bookings_by_ride(self, ride_id: int) -> List[Dict[str, Any]]:
        """Get all passenger entries of a ride in request order."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                SELECT b.*, u.full_name AS passenger_name, u.email AS passenger_email,
                       u.phone AS passenger_phone
                FROM bookings b
                JOIN users u ON b.passenger_id = u.id
                WHERE b.ride_id = {p}
                ORDER BY b.created_at ASC, b.id ASC
            """, (ride_id,))
            return [_serialize_row(row) for row in cursor.fetchall()]

    # =========================================================================
    # Review Operations
    # =========================================================================

    def review_exists(self, cursor, ride_id: int, user_id: int) -> bool:
        p = self._placeholder()
        cursor.execute(f"SELECT id FROM reviews WHERE ride_id = {p} AND user_id = {p}", (ride_id, user_id))
        return cursor.fetchone() is not None

    def insert_review(
        self,
        cursor,
        ride_id: int,
        user_id: int,
        rating: int,
        comment: Optional[str] = None
    ) -> int:
        """Append a review to a ride."""
        p = self._placeholder()
        cursor.execute(f"""
            INSERT INTO reviews (ride_id, user_id, rating, comment)
            VALUES ({p}, {p}, {p}, {p})
        """, (ride_id, user_id, rating, comment))
        return self._inserted_id(cursor)

    def get_reviews_for_ride(self, ride_id: int) -> List[Dict[str, Any]]:
        """Get all reviews of a ride in submission order."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                SELECT rv.*, u.full_name AS reviewer_name
                FROM reviews rv
                JOIN users u ON rv.user_id = u.id
                WHERE rv.ride_id = {p}
                ORDER BY rv.created_at ASC, rv.id ASC
            """, (ride_id,))
            return [_serialize_row(row) for row in cursor.fetchall()]

    def get_driver_average_rating(self, driver_id: int) -> float:
        """Mean rating over every review left on the driver's rides."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                SELECT AVG(rv.rating) AS avg_rating
                FROM reviews rv
                JOIN rides r ON rv.ride_id = r.id
                WHERE r.driver_id = {p}
            """, (driver_id,))
            row = cursor.fetchone()
            if row and row['avg_rating']:
                return round(float(row['avg_rating']), 1)
            return 0.0

    # =========================================================================
    # Notification Operations
    # =========================================================================

    def create_notification(
        self,
        user_id: int,
        notification_type: str,
        message: str,
        ride_id: Optional[int] = None
    ) -> int:
        """Store an unread notification."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                INSERT INTO notifications (user_id, type, message, ride_id)
                VALUES ({p}, {p}, {p}, {p})
            """, (user_id, notification_type, message, ride_id))
            return self._inserted_id(cursor)

    def get_notifications(self, user_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        """Get a user's notifications, newest first."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                SELECT * FROM notifications
                WHERE user_id = {p}
                ORDER BY created_at DESC, id DESC
                LIMIT {p}
            """, (user_id, limit))
            return [_serialize_row(row) for row in cursor.fetchall()]

    def mark_notifications_read(self, user_id: int) -> int:
        """Mark every notification of a user as read."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                UPDATE notifications SET is_read = 1
                WHERE user_id = {p} AND is_read = 0
            """, (user_id,))
            return cursor.rowcount

    def get_unread_notification_count(self, user_id: int) -> int:
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                SELECT COUNT(*) as count FROM notifications
                WHERE user_id = {p} AND is_read = 0
            """, (user_id,))
            return self._count(cursor)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_platform_statistics(self) -> Dict[str, Any]:
        """Get platform-wide statistics."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)

            queries = {
                'total_users': "SELECT COUNT(*) as count FROM users",
                'banned_users': "SELECT COUNT(*) as count FROM users WHERE is_banned = 1",
                'total_rides': "SELECT COUNT(*) as count FROM rides",
                'active_rides': "SELECT COUNT(*) as count FROM rides WHERE status = 'active'",
                'completed_rides': "SELECT COUNT(*) as count FROM rides WHERE status = 'completed'",
                'cancelled_rides': "SELECT COUNT(*) as count FROM rides WHERE status = 'cancelled'",
                'total_bookings': "SELECT COUNT(*) as count FROM bookings",
                'accepted_bookings': "SELECT COUNT(*) as count FROM bookings WHERE status = 'accepted'",
                'total_reviews': "SELECT COUNT(*) as count FROM reviews",
            }

            stats = {}
            for key, sql in queries.items():
                cursor.execute(sql)
                stats[key] = self._count(cursor)

            cursor.execute("SELECT AVG(price_per_seat) as avg_price FROM rides WHERE status != 'cancelled'")
            row = cursor.fetchone()
            stats['average_price'] = round(float(row['avg_price']), 2) if row['avg_price'] else 0

            return stats

    # =========================================================================
    # API Token Operations
    # =========================================================================

    def create_api_token(self, token: str, user_id: int, expires_at: datetime) -> int:
        """
        Store an API token in the database.

        Args:
            token: The token string
            user_id: The user ID this token belongs to
            expires_at: When the token expires

        Returns:
            The ID of the created token record
        """
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                INSERT INTO api_tokens (token, user_id, expires_at)
                VALUES ({p}, {p}, {p})
            """, (token, user_id, self._timestamp(expires_at)))
            return self._inserted_id(cursor)

    def get_user_by_api_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Get the user associated with an API token if valid.

        Returns:
            User dict if token is valid and not expired, None otherwise
        """
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"""
                SELECT u.* FROM users u
                INNER JOIN api_tokens t ON u.id = t.user_id
                WHERE t.token = {p} AND t.expires_at > {p}
            """, (token, self._timestamp(datetime.now())))
            row = cursor.fetchone()
            return _serialize_row(row) if row else None

    def delete_api_token(self, token: str) -> bool:
        """Delete a specific API token (for logout)."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"DELETE FROM api_tokens WHERE token = {p}", (token,))
            return cursor.rowcount > 0

    def cleanup_expired_tokens(self) -> int:
        """Remove all expired tokens from the database."""
        with self.get_connection() as conn:
            cursor = self._get_cursor(conn)
            p = self._placeholder()
            cursor.execute(f"DELETE FROM api_tokens WHERE expires_at < {p}", (self._timestamp(datetime.now()),))
            return cursor.rowcount


# Global database instance
db = Database()
