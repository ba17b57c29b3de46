# backend/device_api/db/tables/devices_table.py
def create_devices_table(cursor):
    query = """
    CREATE TABLE IF NOT EXISTS devices (
        id UUID PRIMARY KEY,
        serial_number VARCHAR(255) NOT NULL,
        issuer_common_name VARCHAR(255) NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT uq_devices_serial_number UNIQUE (serial_number)
    );
    """
    cursor.execute(query)
