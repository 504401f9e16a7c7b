#!/usr/bin/env python3
"""Script to add the indexes the booking paths rely on to an existing database."""
from sqlalchemy import create_engine, text

from reservations.config import get_settings

DATABASE_URL = get_settings().database_url

def add_indexes():
    engine = create_engine(DATABASE_URL)
    with engine.begin() as conn:
        # Conflict checks and availability reads filter by room and day
        conn.execute(text("CREATE INDEX IF NOT EXISTS ix_bookings_room_date ON bookings (room_id, booking_date);"))
        conn.execute(text("CREATE INDEX IF NOT EXISTS idx_bookings_member_id ON bookings (member_id);"))
        conn.execute(text("CREATE INDEX IF NOT EXISTS idx_bookings_guest_id ON bookings (guest_id);"))
        conn.execute(text("CREATE INDEX IF NOT EXISTS idx_bookings_status ON bookings (status);"))

        # Payment references are looked up by prefix when numbering new ones
        conn.execute(text("CREATE UNIQUE INDEX IF NOT EXISTS idx_payments_reference ON payments (payment_reference);"))

        # Returning guests are matched by email
        conn.execute(text("CREATE UNIQUE INDEX IF NOT EXISTS idx_guests_email ON guests (email);"))

        # Room search
        conn.execute(text("CREATE INDEX IF NOT EXISTS idx_rooms_capacity ON rooms (capacity);"))

        print("Indexes added successfully.")

if __name__ == "__main__":
    add_indexes()
