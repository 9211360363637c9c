"""
Table definitions for the school administration database.

Shared by startup DDL (school_admin.init_db) and the Alembic migrations so the
two never drift apart. List-valued columns hold JSON text.
"""

INITIAL_STATEMENTS = [
    '''CREATE TABLE IF NOT EXISTS staff (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            staff_id TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL,
            new_role TEXT,
            mobile_number TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            manager_name TEXT,
            status TEXT NOT NULL DEFAULT 'Current working',
            last_working_day TEXT
        )''',
    '''CREATE TABLE IF NOT EXISTS roles (
            id SERIAL PRIMARY KEY,
            role_name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active'
        )''',
    '''CREATE TABLE IF NOT EXISTS subjects (
            id SERIAL PRIMARY KEY,
            subject_name TEXT NOT NULL,
            subject_type TEXT NOT NULL DEFAULT 'core',
            status TEXT NOT NULL DEFAULT 'active'
        )''',
    '''CREATE TABLE IF NOT EXISTS class_mappings (
            id SERIAL PRIMARY KEY,
            year TEXT NOT NULL,
            classname TEXT NOT NULL,
            division TEXT NOT NULL,
            subjects TEXT NOT NULL DEFAULT '[]',
            elective_groups TEXT NOT NULL DEFAULT '[]',
            status TEXT NOT NULL DEFAULT 'Current working'
        )''',
    '''CREATE TABLE IF NOT EXISTS students (
            id SERIAL PRIMARY KEY,
            first_name TEXT NOT NULL,
            middle_name TEXT,
            last_name TEXT,
            sex TEXT NOT NULL,
            date_of_birth TEXT NOT NULL,
            address TEXT,
            contact_number TEXT,
            email_id TEXT,
            classname TEXT NOT NULL,
            division TEXT NOT NULL,
            roll_number INTEGER NOT NULL,
            father_name TEXT,
            father_mobile_number TEXT,
            father_email_id TEXT,
            mother_name TEXT,
            mother_mobile_number TEXT,
            mother_email_id TEXT,
            guardian_name TEXT,
            guardian_mobile_number TEXT,
            guardian_relation TEXT,
            apaar_id TEXT,
            aadhar_number TEXT,
            selected_elective_groups TEXT NOT NULL DEFAULT '[]'
        )''',
    '''CREATE INDEX IF NOT EXISTS idx_students_class_division
            ON students (classname, division, roll_number)''',
    '''CREATE TABLE IF NOT EXISTS bus_routes (
            id SERIAL PRIMARY KEY,
            route_number TEXT NOT NULL,
            route_name TEXT NOT NULL,
            vehicle_number TEXT NOT NULL,
            driver_name TEXT NOT NULL,
            driver_contact_number TEXT NOT NULL,
            bus_attender_name TEXT,
            bus_attender_contact_number TEXT,
            stops TEXT NOT NULL DEFAULT '[]',
            from_location TEXT,
            to_location TEXT
        )''',
    '''CREATE TABLE IF NOT EXISTS syllabus_masters (
            id SERIAL PRIMARY KEY,
            year TEXT NOT NULL,
            classname TEXT NOT NULL,
            divisions TEXT NOT NULL DEFAULT '[]',
            subject TEXT NOT NULL,
            chapter_lesson_no TEXT NOT NULL,
            topic TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'active'
        )''',
    '''CREATE TABLE IF NOT EXISTS periodic_tests (
            id SERIAL PRIMARY KEY,
            test_name TEXT NOT NULL,
            year TEXT NOT NULL,
            classname TEXT NOT NULL,
            divisions TEXT NOT NULL DEFAULT '[]',
            subject TEXT NOT NULL,
            chapters TEXT NOT NULL DEFAULT '[]',
            test_date TEXT NOT NULL,
            test_time TEXT,
            duration TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
    '''CREATE INDEX IF NOT EXISTS idx_periodic_tests_occurrence
            ON periodic_tests (test_name, year, classname)''',
    '''CREATE TABLE IF NOT EXISTS mock_tests (
            id SERIAL PRIMARY KEY,
            mock_name TEXT NOT NULL,
            description TEXT,
            mock_start_date TEXT NOT NULL,
            mock_end_date TEXT NOT NULL,
            classes TEXT NOT NULL DEFAULT '[]',
            divisions TEXT NOT NULL DEFAULT '[]',
            subjects TEXT NOT NULL DEFAULT '[]',
            questions TEXT NOT NULL DEFAULT '[]',
            status TEXT NOT NULL DEFAULT 'active'
        )''',
    '''CREATE TABLE IF NOT EXISTS news_circulars (
            id SERIAL PRIMARY KEY,
            event_type TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            text TEXT,
            from_date TEXT NOT NULL,
            to_date TEXT NOT NULL,
            file_name TEXT,
            file_path TEXT,
            file_size INTEGER
        )''',
    '''CREATE TABLE IF NOT EXISTS photo_galleries (
            id SERIAL PRIMARY KEY,
            event_name TEXT NOT NULL,
            event_type TEXT NOT NULL DEFAULT 'Others',
            event_date TEXT NOT NULL,
            description TEXT,
            photos TEXT NOT NULL DEFAULT '[]'
        )''',
    '''CREATE TABLE IF NOT EXISTS public_holidays (
            id SERIAL PRIMARY KEY,
            year TEXT NOT NULL,
            holiday_name TEXT NOT NULL,
            holiday_date TEXT NOT NULL,
            description TEXT
        )''',
    '''CREATE TABLE IF NOT EXISTS time_tables (
            id SERIAL PRIMARY KEY,
            academic_year TEXT NOT NULL,
            classname TEXT NOT NULL,
            division TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
    '''CREATE TABLE IF NOT EXISTS time_table_entries (
            id SERIAL PRIMARY KEY,
            time_table_id INTEGER NOT NULL REFERENCES time_tables(id) ON DELETE CASCADE,
            day_of_week TEXT NOT NULL,
            schedule_slot TEXT NOT NULL,
            subject TEXT NOT NULL,
            teacher_id INTEGER,
            teacher_name TEXT
        )''',
]

# Teacher assignments, the bell schedule and recorded marks (migration 002).
SCHEDULE_AND_RESULT_STATEMENTS = [
    '''CREATE TABLE IF NOT EXISTS teacher_mappings (
            id SERIAL PRIMARY KEY,
            classname TEXT NOT NULL,
            subject TEXT NOT NULL,
            divisions TEXT NOT NULL DEFAULT '[]',
            status TEXT NOT NULL DEFAULT 'Current working'
        )''',
    '''CREATE TABLE IF NOT EXISTS working_days (
            id SERIAL PRIMARY KEY,
            day_of_week TEXT NOT NULL UNIQUE,
            day_type TEXT NOT NULL DEFAULT 'FullDay',
            alternate_weeks TEXT NOT NULL DEFAULT '[]',
            timing_from TEXT,
            timing_to TEXT
        )''',
    '''CREATE TABLE IF NOT EXISTS school_schedules (
            id SERIAL PRIMARY KEY,
            day_of_week TEXT NOT NULL,
            type TEXT NOT NULL DEFAULT 'Period',
            name TEXT NOT NULL,
            timing_from TEXT NOT NULL,
            timing_to TEXT NOT NULL
        )''',
    '''CREATE TABLE IF NOT EXISTS test_results (
            id SERIAL PRIMARY KEY,
            periodic_test_id INTEGER NOT NULL REFERENCES periodic_tests(id) ON DELETE CASCADE,
            student_id INTEGER NOT NULL REFERENCES students(id) ON DELETE CASCADE,
            marks TEXT NOT NULL DEFAULT '{}',
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (periodic_test_id, student_id)
        )''',
]

SCHEDULE_AND_RESULT_TABLE_NAMES = [
    'test_results',
    'school_schedules',
    'working_days',
    'teacher_mappings',
]

INITIAL_TABLE_NAMES = [
    'time_table_entries',
    'time_tables',
    'public_holidays',
    'photo_galleries',
    'news_circulars',
    'mock_tests',
    'periodic_tests',
    'syllabus_masters',
    'bus_routes',
    'students',
    'class_mappings',
    'subjects',
    'roles',
    'staff',
]

SCHEMA_STATEMENTS = INITIAL_STATEMENTS + SCHEDULE_AND_RESULT_STATEMENTS

# Drop order: dependents first.
TABLE_NAMES = SCHEDULE_AND_RESULT_TABLE_NAMES + INITIAL_TABLE_NAMES
