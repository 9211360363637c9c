"""
Repair student roll numbers directly against the database.

Usage:
  python reorder_rolls.py --classname "Class 5" --division A
  python reorder_rolls.py --all --dry-run
"""

import argparse
import logging
import os
import sys
from contextlib import closing

import psycopg2
from dotenv import load_dotenv
from psycopg2.extras import DictCursor

from roster import changed_updates, reorder


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Renumber students alphabetically within a class-division.")
    parser.add_argument("--database-url", default=None, help="PostgreSQL URL (defaults to DATABASE_URL)")
    parser.add_argument("--classname", help="Class to repair")
    parser.add_argument("--division", help="Division to repair")
    parser.add_argument("--all", action="store_true", help="Repair every class-division")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing them")
    args = parser.parse_args(argv)
    if not args.all and not (args.classname and args.division):
        parser.error("give --classname and --division, or --all")
    return args


def fetch_scopes(cur):
    cur.execute("SELECT DISTINCT classname, division FROM students ORDER BY classname, division")
    return [(row[0], row[1]) for row in cur.fetchall()]


def fetch_roster(cur, classname, division):
    cur.execute(
        "SELECT id, first_name, roll_number FROM students WHERE classname = %s AND division = %s ORDER BY roll_number, id",
        (classname, division),
    )
    return [dict(row) for row in cur.fetchall()]


def repair_scope(cur, classname, division, dry_run=False) -> int:
    roster = fetch_roster(cur, classname, division)
    updates = changed_updates(roster, reorder(roster))
    if not dry_run:
        for update in updates:
            cur.execute("UPDATE students SET roll_number = %s WHERE id = %s", (update.roll_number, update.student_id))
    return len(updates)


def main(argv=None) -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    args = parse_args(argv)
    database_url = (args.database_url or os.getenv("DATABASE_URL") or "").strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL not found. Set it in .env or pass --database-url.")

    total = 0
    with closing(psycopg2.connect(database_url, cursor_factory=DictCursor)) as conn:
        with conn.cursor() as cur:
            scopes = fetch_scopes(cur) if args.all else [(args.classname, args.division)]
            for classname, division in scopes:
                changed = repair_scope(cur, classname, division, dry_run=args.dry_run)
                total += changed
                print(f"{classname}-{division}: {changed} roll number(s) {'to change' if args.dry_run else 'changed'}")
        if args.dry_run:
            conn.rollback()
        else:
            conn.commit()

    logging.info("reorder_rolls finished: %d roll numbers %s", total, "pending" if args.dry_run else "updated")
    return 0


if __name__ == "__main__":
    sys.exit(main())
