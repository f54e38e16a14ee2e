import json
import sqlite3
import sys

from program import DEFAULT_PROGRAM, ProgramConfig


def migrate(db_path='liftlog.db', program: ProgramConfig = DEFAULT_PROGRAM) -> int:
    """Store the workout slot on logs that only carry a workout name.

    Logs whose name matches no workout in ``program`` are left without a
    slot. Returns the number of updated logs.
    """
    conn = sqlite3.connect(db_path)
    cur = conn.cursor()
    cur.execute("PRAGMA table_info(workout_logs);")
    cols = [r[1] for r in cur.fetchall()]
    if not cols:
        conn.close()
        return 0
    if 'updated_at' not in cols:
        cur.execute("ALTER TABLE workout_logs ADD COLUMN updated_at TEXT;")
    updated = 0
    rows = cur.execute("SELECT user_id, date, data FROM workout_logs;").fetchall()
    for user_id, date, raw in rows:
        data = json.loads(raw)
        if data.get('slot') is not None:
            continue
        slot = program.slot_for_name(data.get('name'))
        if slot is None:
            continue
        data['slot'] = slot
        cur.execute(
            "UPDATE workout_logs SET data = ? WHERE user_id = ? AND date = ?;",
            (json.dumps(data), user_id, date),
        )
        updated += 1
    conn.commit()
    conn.close()
    return updated

if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else 'liftlog.db'
    print(f"{migrate(path)} workout logs updated")
