"""
School Administration Backend

JSON API behind the school admin client: staff, students, class mappings,
bus routes, syllabi, periodic and mock tests, news/circulars, galleries,
holidays, time tables, teacher mappings, working days and the bell schedule.
Students get alphabetical roll numbers within their class-division, and
periodic tests can be exported as result-entry sheets that mark unchosen
elective subjects "N/A". Marks entered against a sheet skip those cells.
"""

from flask import Flask, request, jsonify, send_file, Response
from flask_wtf.csrf import CSRFProtect, CSRFError, generate_csrf
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException
import json
from datetime import date, datetime

import os
from contextlib import contextmanager

import logging
from dotenv import load_dotenv

from admin_forms import (
    BusRouteForm, ClassMappingForm, ElectiveSelectionForm, MockTestForm, NewsCircularForm,
    PeriodicTestForm, PhotoGalleryForm, PublicHolidayForm, ResultEntryForm, RoleForm, SchoolScheduleForm,
    StaffForm, StudentForm, SubjectForm, SyllabusForm, TeacherMappingForm, TimeTableEntryForm, TimeTableForm,
    WorkingDayForm,
)
from result_sheets import (
    build_result_sheet, result_sheet_csv, result_sheet_pdf, sheet_filename, split_marks, test_subjects_for,
)
from roster import assign_on_create, changed_updates, reorder, resolve_subjects
from schema import SCHEMA_STATEMENTS

load_dotenv()

app = Flask(__name__)
ALLOW_INSECURE_DEFAULTS = os.environ.get('ALLOW_INSECURE_DEFAULTS', '').strip().lower() in ('1', 'true', 'yes')
secret_key = os.environ.get('SECRET_KEY')
if not secret_key:
    if ALLOW_INSECURE_DEFAULTS:
        secret_key = 'dev-secret-key-change-me'
    else:
        raise RuntimeError("SECRET_KEY is required in production. Set SECRET_KEY or enable ALLOW_INSECURE_DEFAULTS for local development.")
if not ALLOW_INSECURE_DEFAULTS and len(secret_key) < 32:
    raise RuntimeError("SECRET_KEY is too short. Use at least 32 characters in production.")
app.secret_key = secret_key
app.config['WTF_CSRF_TIME_LIMIT'] = None
app.config['MAX_CONTENT_LENGTH'] = 5 * 1024 * 1024

csrf = CSRFProtect(app)
migrate = Migrate(app, directory='migrations')

DATABASE_URL = os.environ.get('DATABASE_URL', '').strip()
if not DATABASE_URL.startswith(('postgres://', 'postgresql://')):
    raise RuntimeError("PostgreSQL is required. Set DATABASE_URL to a postgresql:// connection string.")

LOG_FILE = os.environ.get('LOG_FILE', 'app.log').strip() or 'app.log'
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').strip().upper()
logging.basicConfig(filename=LOG_FILE, level=getattr(logging, LOG_LEVEL, logging.INFO),
                    format='%(asctime)s - %(levelname)s - %(message)s')
if ALLOW_INSECURE_DEFAULTS:
    logging.warning("ALLOW_INSECURE_DEFAULTS is enabled. Development-only fallbacks may be active.")

# List-valued columns stored as JSON text.
JSON_COLUMNS = {
    'class_mappings': ('subjects', 'elective_groups'),
    'students': ('selected_elective_groups',),
    'bus_routes': ('stops',),
    'syllabus_masters': ('divisions',),
    'periodic_tests': ('divisions', 'chapters'),
    'mock_tests': ('classes', 'divisions', 'subjects', 'questions'),
    'photo_galleries': ('photos',),
    'teacher_mappings': ('divisions',),
    'working_days': ('alternate_weeks',),
    'test_results': ('marks',),
}


def _adapt_query(query):
    return query.replace('?', '%s')


def db_execute(cursor, query, params=None):
    if params is None:
        return cursor.execute(_adapt_query(query))
    return cursor.execute(_adapt_query(query), params)


def get_db():
    """Create a PostgreSQL DB connection."""
    try:
        import psycopg2
        from psycopg2.extras import DictCursor
    except ImportError as exc:
        raise RuntimeError("PostgreSQL backend requires psycopg2-binary") from exc
    return psycopg2.connect(DATABASE_URL, cursor_factory=DictCursor, connect_timeout=10)


@contextmanager
def db_connection(commit=False):
    """Context manager for PostgreSQL connections with optional commit."""
    conn = get_db()
    try:
        yield conn
        if commit:
            conn.commit()
    finally:
        conn.close()


def init_db():
    """Create any missing tables and indexes."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        for statement in SCHEMA_STATEMENTS:
            db_execute(c, statement)
    logging.info("Startup DDL applied (%d statements)", len(SCHEMA_STATEMENTS))


# Initialize database (can be disabled when schema is managed by migrations).
RUN_STARTUP_DDL = os.environ.get('RUN_STARTUP_DDL', '1').strip().lower() in ('1', 'true', 'yes')
if RUN_STARTUP_DDL:
    init_db()
else:
    logging.warning("RUN_STARTUP_DDL is disabled. Ensure schema is already migrated before startup.")


def is_unique_violation(exc):
    return getattr(exc, 'pgcode', None) == '23505'


def decode_row(table, row):
    """Row -> plain dict with JSON columns decoded and timestamps as ISO text."""
    record = dict(row)
    for column in JSON_COLUMNS.get(table, ()):
        raw = record.get(column)
        if isinstance(raw, str):
            record[column] = json.loads(raw) if raw else []
        elif raw is None:
            record[column] = []
    for key, value in record.items():
        if isinstance(value, (datetime, date)):
            record[key] = value.isoformat()
    return record


def encode_values(table, values):
    encoded = dict(values)
    for column in JSON_COLUMNS.get(table, ()):
        if column in encoded:
            encoded[column] = json.dumps(encoded[column] if encoded[column] is not None else [])
    return encoded


def insert_record_with_cursor(c, table, values):
    columns = list(values)
    db_execute(
        c,
        f'INSERT INTO {table} ({", ".join(columns)}) VALUES ({", ".join("?" for _ in columns)}) RETURNING id',
        tuple(values[column] for column in columns),
    )
    return c.fetchone()[0]


def update_record_with_cursor(c, table, record_id, values):
    columns = list(values)
    if not columns:
        return 0
    assignments = ', '.join(f'{column} = ?' for column in columns)
    db_execute(
        c,
        f'UPDATE {table} SET {assignments} WHERE id = ?',
        tuple(values[column] for column in columns) + (record_id,),
    )
    return c.rowcount


def fetch_record_with_cursor(c, table, record_id):
    db_execute(c, f'SELECT * FROM {table} WHERE id = ?', (record_id,))
    row = c.fetchone()
    return decode_row(table, row) if row else None


# ==================== GENERIC RECORDS ====================

def list_records(table):
    """All rows of a table, oldest first."""
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, f'SELECT * FROM {table} ORDER BY id')
        return [decode_row(table, row) for row in c.fetchall()]


def get_record(table, record_id):
    with db_connection() as conn:
        c = conn.cursor()
        return fetch_record_with_cursor(c, table, record_id)


def create_record(table, values):
    """Insert a validated record and return it with its new id."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        record_id = insert_record_with_cursor(c, table, encode_values(table, values))
    logging.info("Created %s id=%s", table, record_id)
    return dict(values, id=record_id)


def update_record(table, record_id, values):
    """Write the merged, revalidated values; None when the row is gone."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        if not update_record_with_cursor(c, table, record_id, encode_values(table, values)):
            return None
        record = fetch_record_with_cursor(c, table, record_id)
    logging.info("Updated %s id=%s", table, record_id)
    return record


def delete_record(table, record_id):
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(c, f'DELETE FROM {table} WHERE id = ?', (record_id,))
        deleted = c.rowcount > 0
    if deleted:
        logging.info("Deleted %s id=%s", table, record_id)
    return deleted


def derive_route_endpoints(stops):
    """(from_location, to_location) taken from the first and last stop."""
    if not stops:
        return None, None
    first = str(stops[0].get('address') or '').strip() or None
    last = str(stops[-1].get('address') or '').strip() or None
    return first, last


def prepare_bus_route(values):
    values['from_location'], values['to_location'] = derive_route_endpoints(values.get('stops'))
    return values


def prepare_periodic_test(values):
    values['updated_at'] = datetime.now()
    return values


def school_schedule_problem(values, record_id=None):
    """(message, status) when a schedule slot cannot be placed on its day, else None."""
    day = values['day_of_week']
    working_day = get_working_day_by_day(day)
    if working_day is not None:
        if working_day['day_type'] == 'Holiday':
            return f'{day} is not a working day', 400
        opens, closes = working_day.get('timing_from'), working_day.get('timing_to')
        if opens and closes and (values['timing_from'] < opens or values['timing_to'] > closes):
            return f'{day} runs from {opens} to {closes}', 400
    for other in get_school_schedules_by_day(day):
        if other['id'] == record_id:
            continue
        if values['timing_from'] < other['timing_to'] and values['timing_to'] > other['timing_from']:
            return f'Overlaps "{other["name"]}" ({other["timing_from"]}-{other["timing_to"]})', 409
    return None


RESOURCES = {
    'staff': {'table': 'staff', 'form': StaffForm, 'label': 'staff member'},
    'roles': {'table': 'roles', 'form': RoleForm, 'label': 'role'},
    'subjects': {'table': 'subjects', 'form': SubjectForm, 'label': 'subject'},
    'class-mappings': {'table': 'class_mappings', 'form': ClassMappingForm, 'label': 'class mapping'},
    'bus-routes': {'table': 'bus_routes', 'form': BusRouteForm, 'label': 'bus route', 'prepare': prepare_bus_route},
    'syllabus': {'table': 'syllabus_masters', 'form': SyllabusForm, 'label': 'syllabus'},
    'periodic-tests': {'table': 'periodic_tests', 'form': PeriodicTestForm, 'label': 'periodic test', 'prepare': prepare_periodic_test},
    'mock-tests': {'table': 'mock_tests', 'form': MockTestForm, 'label': 'mock test'},
    'news-circulars': {'table': 'news_circulars', 'form': NewsCircularForm, 'label': 'news/circular'},
    'photo-galleries': {'table': 'photo_galleries', 'form': PhotoGalleryForm, 'label': 'photo gallery'},
    'public-holidays': {'table': 'public_holidays', 'form': PublicHolidayForm, 'label': 'public holiday'},
    'time-tables': {'table': 'time_tables', 'form': TimeTableForm, 'label': 'time table'},
    'teacher-mappings': {'table': 'teacher_mappings', 'form': TeacherMappingForm, 'label': 'teacher mapping'},
    'working-days': {'table': 'working_days', 'form': WorkingDayForm, 'label': 'working day'},
    'school-schedules': {'table': 'school_schedules', 'form': SchoolScheduleForm, 'label': 'school schedule',
                         'check': school_schedule_problem},
}


# ==================== STUDENTS ====================

def get_students_by_class_division(classname, division):
    """Students of one class-division in roll-number order."""
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, '''SELECT * FROM students WHERE classname = ? AND division = ?
                         ORDER BY roll_number, id''', (classname, division))
        return [decode_row('students', row) for row in c.fetchall()]


def apply_roll_updates_with_cursor(c, updates):
    for update in updates:
        db_execute(c, 'UPDATE students SET roll_number = ? WHERE id = ?',
                   (update.roll_number, update.student_id))


def create_student(data):
    """Insert a student at its alphabetical position, shifting later roll numbers."""
    roster = get_students_by_class_division(data['classname'], data['division'])
    assignment = assign_on_create(roster, data)
    values = dict(data, roll_number=assignment.roll_number)
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        apply_roll_updates_with_cursor(c, assignment.roster_updates)
        student_id = insert_record_with_cursor(c, 'students', encode_values('students', values))
    logging.info("Student %s added to %s-%s with roll %s (%d shifted)", student_id, data['classname'],
                 data['division'], assignment.roll_number, len(assignment.roster_updates))
    return dict(values, id=student_id)


def reorder_roll_numbers(classname, division):
    """Renumber a class-division alphabetically; returns how many rows changed."""
    roster = get_students_by_class_division(classname, division)
    updates = changed_updates(roster, reorder(roster))
    if updates:
        with db_connection(commit=True) as conn:
            c = conn.cursor()
            apply_roll_updates_with_cursor(c, updates)
    logging.info("Reordered %s-%s: %d of %d roll numbers changed", classname, division, len(updates), len(roster))
    return len(updates)


def update_student(student_id, data):
    existing = get_record('students', student_id)
    if existing is None:
        return None
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        update_record_with_cursor(c, 'students', student_id, encode_values('students', data))
    if any(existing.get(key) != data.get(key) for key in ('first_name', 'classname', 'division')):
        scopes = [(existing['classname'], existing['division'])]
        if (data['classname'], data['division']) not in scopes:
            scopes.append((data['classname'], data['division']))
        for classname, division in scopes:
            reorder_roll_numbers(classname, division)
    return get_record('students', student_id)


def delete_student(student_id):
    existing = get_record('students', student_id)
    if existing is None:
        return False
    delete_record('students', student_id)
    reorder_roll_numbers(existing['classname'], existing['division'])
    return True


def update_student_electives(student_id, selections):
    """Replace a student's elective selections."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(c, 'UPDATE students SET selected_elective_groups = ? WHERE id = ?',
                   (json.dumps(selections), student_id))
        if not c.rowcount:
            return None
        return fetch_record_with_cursor(c, 'students', student_id)


def get_students_with_elective_subject(subject):
    """Students whose selections include the given elective subject."""
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM students ORDER BY classname, division, roll_number, id')
        students = [decode_row('students', row) for row in c.fetchall()]
    return [
        student for student in students
        if any((entry or {}).get('selected_subject') == subject for entry in student['selected_elective_groups'])
    ]


def get_class_division_stats():
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, '''SELECT classname, division, COUNT(*) AS count FROM students
                         GROUP BY classname, division ORDER BY classname, division''')
        return [{'classname': row[0], 'division': row[1], 'count': row[2]} for row in c.fetchall()]


def get_periodic_tests_for(test_name, year, classname):
    """All subject rows of one test occurrence."""
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, '''SELECT * FROM periodic_tests WHERE test_name = ? AND year = ? AND classname = ?
                         ORDER BY test_date, id''', (test_name, year, classname))
        return [decode_row('periodic_tests', row) for row in c.fetchall()]


# ==================== TIME TABLES ====================

def get_time_table_entries(time_table_id):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM time_table_entries WHERE time_table_id = ? ORDER BY id', (time_table_id,))
        return [decode_row('time_table_entries', row) for row in c.fetchall()]


def get_time_table_by_class_division(classname, division):
    """Most recent time table for a class-division, with its entries."""
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, '''SELECT * FROM time_tables WHERE classname = ? AND division = ?
                         ORDER BY id DESC LIMIT 1''', (classname, division))
        row = c.fetchone()
    if not row:
        return None
    time_table = decode_row('time_tables', row)
    time_table['entries'] = get_time_table_entries(time_table['id'])
    return time_table


def check_teacher_conflict(day_of_week, schedule_slot, teacher_id, exclude_time_table_id=None, exclude_entry_id=None):
    """True when the teacher already has an entry in the same day and slot."""
    if teacher_id is None:
        return False
    query = '''SELECT id FROM time_table_entries
               WHERE day_of_week = ? AND schedule_slot = ? AND teacher_id = ?'''
    params = [day_of_week, schedule_slot, teacher_id]
    if exclude_time_table_id is not None:
        query += ' AND time_table_id <> ?'
        params.append(exclude_time_table_id)
    if exclude_entry_id is not None:
        query += ' AND id <> ?'
        params.append(exclude_entry_id)
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, query + ' LIMIT 1', tuple(params))
        return c.fetchone() is not None


def create_time_table_entry(time_table_id, values):
    return create_record('time_table_entries', dict(values, time_table_id=time_table_id))


def update_time_table_entry(entry_id, values):
    return update_record('time_table_entries', entry_id, values)


def delete_time_table_entry(entry_id):
    return delete_record('time_table_entries', entry_id)


# ==================== SCHEDULES AND TEACHERS ====================

def get_working_day_by_day(day_of_week):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM working_days WHERE day_of_week = ?', (day_of_week,))
        row = c.fetchone()
    return decode_row('working_days', row) if row else None


def upsert_working_day(values):
    """Insert or replace the settings for one weekday; returns the stored record."""
    encoded = encode_values('working_days', values)
    columns = list(encoded)
    updates = ', '.join(f'{column} = excluded.{column}' for column in columns if column != 'day_of_week')
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        db_execute(
            c,
            f'''INSERT INTO working_days ({", ".join(columns)}) VALUES ({", ".join("?" for _ in columns)})
                ON CONFLICT (day_of_week) DO UPDATE SET {updates} RETURNING id''',
            tuple(encoded[column] for column in columns),
        )
        record_id = c.fetchone()[0]
    logging.info("Working day %s saved as %s (id=%s)", values['day_of_week'], values['day_type'], record_id)
    return dict(values, id=record_id)


def get_school_schedules_by_day(day_of_week):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM school_schedules WHERE day_of_week = ? ORDER BY timing_from, id', (day_of_week,))
        return [decode_row('school_schedules', row) for row in c.fetchall()]


def get_teacher_mappings_by_class(classname):
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, 'SELECT * FROM teacher_mappings WHERE classname = ? ORDER BY subject, id', (classname,))
        return [decode_row('teacher_mappings', row) for row in c.fetchall()]


# ==================== TEST RESULTS ====================

def get_test_results(periodic_test_id, division=None):
    """Recorded marks of a periodic test, optionally for one division only."""
    query = '''SELECT r.* FROM test_results r JOIN students s ON s.id = r.student_id
               WHERE r.periodic_test_id = ?'''
    params = [periodic_test_id]
    if division:
        query += ' AND s.division = ?'
        params.append(division)
    with db_connection() as conn:
        c = conn.cursor()
        db_execute(c, query + ' ORDER BY s.roll_number, r.student_id', tuple(params))
        return [decode_row('test_results', row) for row in c.fetchall()]


def save_test_results(periodic_test_id, entries):
    """Upsert ``{student_id: marks}``; each student's marks replace what was stored."""
    with db_connection(commit=True) as conn:
        c = conn.cursor()
        for student_id, marks in entries.items():
            db_execute(c, '''INSERT INTO test_results (periodic_test_id, student_id, marks)
                             VALUES (?, ?, ?)
                             ON CONFLICT (periodic_test_id, student_id)
                             DO UPDATE SET marks = excluded.marks, updated_at = CURRENT_TIMESTAMP''',
                       (periodic_test_id, student_id, json.dumps(marks)))
    logging.info("Saved results of periodic test %s for %d students", periodic_test_id, len(entries))
    return len(entries)


# ==================== REQUEST HELPERS ====================

def _error(message, status, **extra):
    body = {'message': message}
    body.update(extra)
    return jsonify(body), status


def _parse_id(value):
    try:
        record_id = int(value)
    except (TypeError, ValueError):
        return None
    return record_id if record_id > 0 else None


def _json_payload():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else None


def _validated(form_class, payload):
    """Run a form over a JSON payload; returns (values, errors)."""
    form = form_class(formdata=None, data=payload)
    if not form.validate():
        return None, form.errors
    return form.record_data(), None


def _validation_error(errors):
    return _error('Validation failed', 400, errors=errors)


def _storage_error(exc, action):
    if is_unique_violation(exc):
        return _error('A record with the same unique value already exists', 409)
    logging.exception("Failed to %s", action)
    return _error(f'Failed to {action}', 500)


# ==================== ROUTES ====================

@app.errorhandler(CSRFError)
def csrf_error(error):
    """Handle CSRF token errors."""
    return _error(error.description or 'CSRF token missing or invalid', 400)


@app.errorhandler(HTTPException)
def http_error(error):
    return _error(error.description, error.code)


@app.route('/api/csrf-token', methods=['GET'])
def csrf_token():
    return jsonify({'csrf_token': generate_csrf()})


@app.route('/api/students', methods=['GET'])
def list_students():
    try:
        return jsonify(list_records('students'))
    except Exception as exc:
        return _storage_error(exc, 'fetch students')


@app.route('/api/students', methods=['POST'])
def add_student():
    payload = _json_payload()
    if payload is None:
        return _error('Invalid JSON body', 400)
    values, errors = _validated(StudentForm, payload)
    if errors:
        return _validation_error(errors)
    try:
        return jsonify(create_student(values)), 201
    except Exception as exc:
        return _storage_error(exc, 'create student')


@app.route('/api/students/<student_id>', methods=['GET'])
def get_student(student_id):
    record_id = _parse_id(student_id)
    if record_id is None:
        return _error('Invalid student id', 400)
    try:
        student = get_record('students', record_id)
    except Exception as exc:
        return _storage_error(exc, 'fetch student')
    if student is None:
        return _error('Student not found', 404)
    return jsonify(student)


@app.route('/api/students/<student_id>', methods=['PATCH'])
def edit_student(student_id):
    record_id = _parse_id(student_id)
    if record_id is None:
        return _error('Invalid student id', 400)
    payload = _json_payload()
    if payload is None:
        return _error('Invalid JSON body', 400)
    try:
        existing = get_record('students', record_id)
        if existing is None:
            return _error('Student not found', 404)
        values, errors = _validated(StudentForm, {**existing, **payload})
        if errors:
            return _validation_error(errors)
        student = update_student(record_id, values)
    except Exception as exc:
        return _storage_error(exc, 'update student')
    if student is None:
        return _error('Student not found', 404)
    return jsonify(student)


@app.route('/api/students/<student_id>', methods=['DELETE'])
def remove_student(student_id):
    record_id = _parse_id(student_id)
    if record_id is None:
        return _error('Invalid student id', 400)
    try:
        deleted = delete_student(record_id)
    except Exception as exc:
        return _storage_error(exc, 'delete student')
    if not deleted:
        return _error('Student not found', 404)
    return jsonify({'message': 'Student deleted'})


@app.route('/api/students/class/<classname>/division/<division>', methods=['GET'])
def class_division_roster(classname, division):
    try:
        return jsonify(get_students_by_class_division(classname, division))
    except Exception as exc:
        return _storage_error(exc, 'fetch students')


@app.route('/api/students/class/<classname>/division/<division>/reorder', methods=['POST'])
def reorder_class_division(classname, division):
    try:
        updated = reorder_roll_numbers(classname, division)
    except Exception as exc:
        return _storage_error(exc, 'reorder roll numbers')
    return jsonify({'message': 'Roll numbers reordered', 'updated': updated})


@app.route('/api/students/<student_id>/electives', methods=['PUT'])
def replace_student_electives(student_id):
    record_id = _parse_id(student_id)
    if record_id is None:
        return _error('Invalid student id', 400)
    payload = _json_payload()
    if payload is None:
        return _error('Invalid JSON body', 400)
    values, errors = _validated(ElectiveSelectionForm, payload)
    if errors:
        return _validation_error(errors)
    try:
        student = update_student_electives(record_id, values['selected_elective_groups'])
    except Exception as exc:
        return _storage_error(exc, 'update elective selections')
    if student is None:
        return _error('Student not found', 404)
    return jsonify(student)


@app.route('/api/students/elective/<subject>', methods=['GET'])
def students_with_elective(subject):
    try:
        return jsonify(get_students_with_elective_subject(subject))
    except Exception as exc:
        return _storage_error(exc, 'fetch students')


@app.route('/api/class-division-stats', methods=['GET'])
def class_division_stats():
    try:
        return jsonify(get_class_division_stats())
    except Exception as exc:
        return _storage_error(exc, 'fetch class statistics')


@app.route('/api/class-mappings/class/<classname>/subjects', methods=['GET'])
def class_subjects(classname):
    """Core subjects and elective groups of a class, optionally limited to one test."""
    test_name = (request.args.get('test_name') or '').strip()
    year = (request.args.get('year') or '').strip()
    if bool(test_name) != bool(year):
        return _error('test_name and year must be given together', 400)
    try:
        mappings = list_records('class_mappings')
        test_subjects = None
        if test_name:
            test_subjects = test_subjects_for(get_periodic_tests_for(test_name, year, classname), test_name, year, classname)
    except Exception as exc:
        return _storage_error(exc, 'fetch class subjects')
    resolution = resolve_subjects(mappings, classname, test_subjects)
    return jsonify({
        'classname': classname,
        'core_subjects': resolution.core_subjects,
        'elective_groups': [group._asdict() for group in resolution.elective_groups],
    })


@app.route('/api/periodic-tests/result-sheet', methods=['GET'])
def periodic_test_result_sheet():
    params = {key: (request.args.get(key) or '').strip() for key in ('test_name', 'year', 'classname', 'division')}
    missing = [key for key, value in params.items() if not value]
    if missing:
        return _error('Missing query parameters', 400, missing=missing)
    output_format = (request.args.get('format') or 'json').strip().lower()
    if output_format not in ('json', 'csv', 'pdf'):
        return _error('format must be json, csv or pdf', 400)

    try:
        periodic_tests = get_periodic_tests_for(params['test_name'], params['year'], params['classname'])
        if not periodic_tests:
            return _error('Periodic test not found', 404)
        sheet = build_result_sheet(
            list_records('class_mappings'),
            periodic_tests,
            get_students_by_class_division(params['classname'], params['division']),
            **params,
        )
    except Exception as exc:
        return _storage_error(exc, 'build result sheet')

    if output_format == 'csv':
        return Response(
            result_sheet_csv(sheet),
            mimetype='text/csv',
            headers={'Content-Disposition': f'attachment; filename={sheet_filename(sheet, "csv")}'},
        )
    if output_format == 'pdf':
        return send_file(result_sheet_pdf(sheet), mimetype='application/pdf', as_attachment=True,
                         download_name=sheet_filename(sheet, 'pdf'))
    return jsonify(sheet)


@app.route('/api/time-tables/class/<classname>/division/<division>', methods=['GET'])
def class_division_time_table(classname, division):
    try:
        time_table = get_time_table_by_class_division(classname, division)
    except Exception as exc:
        return _storage_error(exc, 'fetch time table')
    if time_table is None:
        return _error('Time table not found', 404)
    return jsonify(time_table)


@app.route('/api/time-tables/<time_table_id>/entries', methods=['GET'])
def list_entries(time_table_id):
    record_id = _parse_id(time_table_id)
    if record_id is None:
        return _error('Invalid time table id', 400)
    try:
        return jsonify(get_time_table_entries(record_id))
    except Exception as exc:
        return _storage_error(exc, 'fetch time table entries')


@app.route('/api/time-tables/<time_table_id>/entries', methods=['POST'])
def add_entry(time_table_id):
    record_id = _parse_id(time_table_id)
    if record_id is None:
        return _error('Invalid time table id', 400)
    payload = _json_payload()
    if payload is None:
        return _error('Invalid JSON body', 400)
    values, errors = _validated(TimeTableEntryForm, payload)
    if errors:
        return _validation_error(errors)
    try:
        if get_record('time_tables', record_id) is None:
            return _error('Time table not found', 404)
        if check_teacher_conflict(values['day_of_week'], values['schedule_slot'], values['teacher_id']):
            return _error('Teacher already has a class at this day and slot', 409)
        return jsonify(create_time_table_entry(record_id, values)), 201
    except Exception as exc:
        return _storage_error(exc, 'create time table entry')


@app.route('/api/time-table-entries/<entry_id>', methods=['PATCH'])
def edit_entry(entry_id):
    record_id = _parse_id(entry_id)
    if record_id is None:
        return _error('Invalid entry id', 400)
    payload = _json_payload()
    if payload is None:
        return _error('Invalid JSON body', 400)
    try:
        existing = get_record('time_table_entries', record_id)
        if existing is None:
            return _error('Time table entry not found', 404)
        values, errors = _validated(TimeTableEntryForm, {**existing, **payload})
        if errors:
            return _validation_error(errors)
        if check_teacher_conflict(values['day_of_week'], values['schedule_slot'], values['teacher_id'],
                                  exclude_entry_id=record_id):
            return _error('Teacher already has a class at this day and slot', 409)
        return jsonify(update_time_table_entry(record_id, values))
    except Exception as exc:
        return _storage_error(exc, 'update time table entry')


@app.route('/api/time-table-entries/<entry_id>', methods=['DELETE'])
def remove_entry(entry_id):
    record_id = _parse_id(entry_id)
    if record_id is None:
        return _error('Invalid entry id', 400)
    try:
        deleted = delete_time_table_entry(record_id)
    except Exception as exc:
        return _storage_error(exc, 'delete time table entry')
    if not deleted:
        return _error('Time table entry not found', 404)
    return jsonify({'message': 'Time table entry deleted'})


@app.route('/api/working-days/day/<day_of_week>', methods=['PUT'])
def save_working_day(day_of_week):
    payload = _json_payload()
    if payload is None:
        return _error('Invalid JSON body', 400)
    values, errors = _validated(WorkingDayForm, dict(payload, day_of_week=day_of_week))
    if errors:
        return _validation_error(errors)
    try:
        return jsonify(upsert_working_day(values))
    except Exception as exc:
        return _storage_error(exc, 'save working day')


@app.route('/api/school-schedules/day/<day_of_week>', methods=['GET'])
def day_schedule(day_of_week):
    try:
        return jsonify(get_school_schedules_by_day(day_of_week))
    except Exception as exc:
        return _storage_error(exc, 'fetch school schedule')


@app.route('/api/teacher-mappings/class/<classname>', methods=['GET'])
def class_teacher_mappings(classname):
    try:
        return jsonify(get_teacher_mappings_by_class(classname))
    except Exception as exc:
        return _storage_error(exc, 'fetch teacher mappings')


@app.route('/api/periodic-tests/<test_id>/results', methods=['GET'])
def list_test_results(test_id):
    record_id = _parse_id(test_id)
    if record_id is None:
        return _error('Invalid periodic test id', 400)
    division = (request.args.get('division') or '').strip() or None
    try:
        return jsonify(get_test_results(record_id, division))
    except Exception as exc:
        return _storage_error(exc, 'fetch test results')


@app.route('/api/periodic-tests/<test_id>/results', methods=['PUT'])
def enter_test_results(test_id):
    """Record marks for one division; cells marked N/A on the sheet are dropped."""
    record_id = _parse_id(test_id)
    if record_id is None:
        return _error('Invalid periodic test id', 400)
    payload = _json_payload()
    if payload is None:
        return _error('Invalid JSON body', 400)
    values, errors = _validated(ResultEntryForm, payload)
    if errors:
        return _validation_error(errors)
    division = values['division']
    try:
        test = get_record('periodic_tests', record_id)
        if test is None:
            return _error('Periodic test not found', 404)
        if test['divisions'] and division not in test['divisions']:
            return _error(f'Division {division} does not sit this test', 400)
        sheet = build_result_sheet(
            list_records('class_mappings'),
            [test],
            get_students_by_class_division(test['classname'], division),
            test['test_name'],
            test['year'],
            test['classname'],
            division,
        )
        on_sheet = {row['student_id'] for row in sheet['rows']}
        unknown = sorted(entry['student_id'] for entry in values['results'] if entry['student_id'] not in on_sheet)
        if unknown:
            return _error('Students are not in this class-division', 400, student_ids=unknown)
        kept, skipped = {}, {}
        for entry in values['results']:
            kept[entry['student_id']], dropped = split_marks(sheet, entry['student_id'], entry['marks'])
            if dropped:
                skipped[str(entry['student_id'])] = dropped
        save_test_results(record_id, kept)
    except Exception as exc:
        return _storage_error(exc, 'save test results')
    return jsonify({'saved': sorted(kept), 'skipped': skipped})


@app.route('/api/<resource>', methods=['GET'])
def list_resource(resource):
    meta = RESOURCES.get(resource)
    if meta is None:
        return _error('Unknown resource', 404)
    try:
        return jsonify(list_records(meta['table']))
    except Exception as exc:
        return _storage_error(exc, f"fetch {meta['label']} records")


@app.route('/api/<resource>', methods=['POST'])
def create_resource(resource):
    meta = RESOURCES.get(resource)
    if meta is None:
        return _error('Unknown resource', 404)
    payload = _json_payload()
    if payload is None:
        return _error('Invalid JSON body', 400)
    values, errors = _validated(meta['form'], payload)
    if errors:
        return _validation_error(errors)
    prepare = meta.get('prepare')
    if prepare:
        values = prepare(values)
    try:
        problem = meta['check'](values) if 'check' in meta else None
        if problem:
            return _error(*problem)
        return jsonify(create_record(meta['table'], values)), 201
    except Exception as exc:
        return _storage_error(exc, f"create {meta['label']}")


@app.route('/api/<resource>/<record_id>', methods=['GET'])
def get_resource(resource, record_id):
    meta = RESOURCES.get(resource)
    if meta is None:
        return _error('Unknown resource', 404)
    parsed_id = _parse_id(record_id)
    if parsed_id is None:
        return _error('Invalid id', 400)
    try:
        record = get_record(meta['table'], parsed_id)
    except Exception as exc:
        return _storage_error(exc, f"fetch {meta['label']}")
    if record is None:
        return _error(f"{meta['label'].capitalize()} not found", 404)
    return jsonify(record)


@app.route('/api/<resource>/<record_id>', methods=['PATCH'])
def update_resource(resource, record_id):
    meta = RESOURCES.get(resource)
    if meta is None:
        return _error('Unknown resource', 404)
    parsed_id = _parse_id(record_id)
    if parsed_id is None:
        return _error('Invalid id', 400)
    payload = _json_payload()
    if payload is None:
        return _error('Invalid JSON body', 400)
    try:
        existing = get_record(meta['table'], parsed_id)
        if existing is None:
            return _error(f"{meta['label'].capitalize()} not found", 404)
        values, errors = _validated(meta['form'], {**existing, **payload})
        if errors:
            return _validation_error(errors)
        prepare = meta.get('prepare')
        if prepare:
            values = prepare(values)
        problem = meta['check'](values, parsed_id) if 'check' in meta else None
        if problem:
            return _error(*problem)
        record = update_record(meta['table'], parsed_id, values)
    except Exception as exc:
        return _storage_error(exc, f"update {meta['label']}")
    if record is None:
        return _error(f"{meta['label'].capitalize()} not found", 404)
    return jsonify(record)


@app.route('/api/<resource>/<record_id>', methods=['DELETE'])
def delete_resource(resource, record_id):
    meta = RESOURCES.get(resource)
    if meta is None:
        return _error('Unknown resource', 404)
    parsed_id = _parse_id(record_id)
    if parsed_id is None:
        return _error('Invalid id', 400)
    try:
        deleted = delete_record(meta['table'], parsed_id)
    except Exception as exc:
        return _storage_error(exc, f"delete {meta['label']}")
    if not deleted:
        return _error(f"{meta['label'].capitalize()} not found", 404)
    return jsonify({'message': f"{meta['label'].capitalize()} deleted"})


if __name__ == '__main__':
    app.run(debug=os.environ.get('FLASK_DEBUG', '').strip().lower() in ('1', 'true', 'yes'))
