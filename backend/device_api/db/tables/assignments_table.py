# backend/device_api/db/tables/assignments_table.py
ACTIVE_ASSIGNMENT_INDEX = "uq_assignments_active_device"


def create_assignments_table(cursor):
    query = """
    CREATE TABLE IF NOT EXISTS assignments (
      id UUID PRIMARY KEY,
      device_id UUID NOT NULL REFERENCES devices(id) ON DELETE RESTRICT,
      user_id VARCHAR(255) NOT NULL,
      assigned_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      unassigned_at TIMESTAMPTZ NULL
    );
    """
    cursor.execute(query)
    # At most one open interval per device; this index is what serializes racing assigns.
    cursor.execute(
        f"CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_ASSIGNMENT_INDEX} "
        "ON assignments (device_id) WHERE unassigned_at IS NULL;"
    )
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_assignments_device ON assignments (device_id);")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_assignments_user ON assignments (user_id) "
                   "WHERE unassigned_at IS NULL;")
