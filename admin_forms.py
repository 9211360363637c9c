"""
Form classes for every record the admin client can create or edit.

Payloads arrive as JSON, so forms are built with ``formdata=None`` and the
decoded body as ``data``. CSRF is checked once per request by CSRFProtect,
not per form.
"""

from flask_wtf import FlaskForm
from wtforms import Field, IntegerField, SelectField, StringField, validators
from wtforms.validators import ValidationError

PHONE_PATTERN = r'^\+?[0-9][0-9 \-]{6,14}$'
EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'
TIME_PATTERN = r'^([01][0-9]|2[0-3]):[0-5][0-9]$'
DAYS_OF_WEEK = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

required = validators.DataRequired


def _clean_strings(values):
    out = []
    for value in values:
        text = ' '.join(str(value if value is not None else '').split())
        if text and text not in out:
            out.append(text)
    return out


def _as_list(value, label):
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f'{label} must be a list.')
    return list(value)


class BlankAllowed:
    """Stop the validation chain when the value is blank."""

    field_flags = {'optional': True}

    def __call__(self, form, field):
        if field.process_errors:
            raise validators.StopValidation()
        if field.data is None or (isinstance(field.data, str) and not field.data.strip()):
            field.errors[:] = []
            raise validators.StopValidation()


optional = BlankAllowed


class TextField(StringField):
    """Single-line text; non-string JSON scalars are converted and trimmed."""

    def process_data(self, value):
        self.data = None if value is None else str(value).strip()


class StringListField(Field):
    """List of distinct, whitespace-normalized strings (subjects, divisions...)."""

    def process_data(self, value):
        self.data = []
        self.data = _clean_strings(_as_list(value, 'Value'))

    def process_formdata(self, valuelist):
        self.data = _clean_strings(valuelist)


class ObjectListField(Field):
    """List of JSON objects stored as-is (bus stops, mock-test questions)."""

    def process_data(self, value):
        self.data = []
        items = _as_list(value, 'Value')
        if any(not isinstance(item, dict) for item in items):
            raise ValueError('Each item must be an object.')
        self.data = items


class ElectiveGroupsField(Field):
    """``[{group_name, subjects}]`` for a class mapping."""

    def process_data(self, value):
        self.data = []
        groups = []
        for item in _as_list(value, 'Elective groups'):
            if not isinstance(item, dict):
                raise ValueError('Each elective group must be an object.')
            groups.append({
                'group_name': ' '.join(str(item.get('group_name') or '').split()),
                'subjects': _clean_strings(_as_list(item.get('subjects'), 'Group subjects')),
            })
        self.data = groups

    def pre_validate(self, form):
        seen = set()
        for group in self.data or []:
            if not group['group_name']:
                raise ValidationError('Every elective group needs a name.')
            if not group['subjects']:
                raise ValidationError(f'Elective group "{group["group_name"]}" has no subjects.')
            key = group['group_name'].lower()
            if key in seen:
                raise ValidationError(f'Elective group "{group["group_name"]}" is listed twice.')
            seen.add(key)


class ElectiveSelectionsField(Field):
    """``[{group_name, selected_subject}]``; one entry per group, last one wins."""

    def process_data(self, value):
        self.data = []
        by_group = {}
        for item in _as_list(value, 'Elective selections'):
            if not isinstance(item, dict):
                raise ValueError('Each elective selection must be an object.')
            group_name = ' '.join(str(item.get('group_name') or '').split())
            subject = ' '.join(str(item.get('selected_subject') or '').split())
            if group_name:
                by_group.pop(group_name, None)
                by_group[group_name] = subject
        self.data = [{'group_name': g, 'selected_subject': s} for g, s in by_group.items()]

    def pre_validate(self, form):
        for entry in self.data or []:
            if not entry['selected_subject']:
                raise ValidationError(f'No subject selected for "{entry["group_name"]}".')


class ApiForm(FlaskForm):
    class Meta:
        csrf = False

    def record_data(self):
        return dict(self.data)


class StaffForm(ApiForm):
    name = TextField('Name', [required(), validators.Length(max=120)])
    staff_id = TextField('Staff ID', [required(), validators.Length(max=40)])
    role = TextField('Role', [required()])
    new_role = TextField('New Role', [optional()])
    mobile_number = TextField('Mobile Number', [required(), validators.Regexp(PHONE_PATTERN, message='Invalid mobile number.')])
    email = TextField('Email', [required(), validators.Regexp(EMAIL_PATTERN, message='Invalid email address.')])
    manager_name = TextField('Manager Name', [optional()])
    status = SelectField('Status', choices=['Current working', 'Resigned', 'Retired'], default='Current working')
    last_working_day = TextField('Last Working Day')

    def validate_last_working_day(self, field):
        if self.status.data != 'Current working' and not field.data:
            raise ValidationError('Last working day is required once staff has left.')


class RoleForm(ApiForm):
    role_name = TextField('Role Name', [required()])
    status = SelectField('Status', choices=['active', 'inactive'], default='active')


class SubjectForm(ApiForm):
    subject_name = TextField('Subject Name', [required()])
    subject_type = SelectField('Subject Type', choices=['core', 'elective'], default='core')
    status = SelectField('Status', choices=['active', 'inactive'], default='active')


class ClassMappingForm(ApiForm):
    year = TextField('Year', [required()])
    classname = TextField('Class', [required()])
    division = TextField('Division', [required()])
    subjects = StringListField('Subjects', default=list)
    elective_groups = ElectiveGroupsField('Elective Groups', default=list)
    status = TextField('Status', default='Current working', filters=[lambda value: value or 'Current working'])

    def validate_subjects(self, field):
        if not field.data and not self.elective_groups.data:
            raise ValidationError('Select at least one subject or elective group.')


class StudentForm(ApiForm):
    first_name = TextField('First Name', [required(message='First name is required.')])
    middle_name = TextField('Middle Name', [optional()])
    last_name = TextField('Last Name', [optional()])
    sex = SelectField('Sex', choices=['Male', 'Female', 'Other'])
    date_of_birth = TextField('Date of Birth', [required()])
    address = TextField('Address', [optional()])
    contact_number = TextField('Contact Number', [optional(), validators.Regexp(PHONE_PATTERN)])
    email_id = TextField('Email ID', [optional(), validators.Regexp(EMAIL_PATTERN)])
    classname = TextField('Class', [required()])
    division = TextField('Division', [required()])
    father_name = TextField('Father Name', [optional()])
    father_mobile_number = TextField('Father Mobile Number', [optional(), validators.Regexp(PHONE_PATTERN)])
    father_email_id = TextField('Father Email ID', [optional(), validators.Regexp(EMAIL_PATTERN)])
    mother_name = TextField('Mother Name', [optional()])
    mother_mobile_number = TextField('Mother Mobile Number', [optional(), validators.Regexp(PHONE_PATTERN)])
    mother_email_id = TextField('Mother Email ID', [optional(), validators.Regexp(EMAIL_PATTERN)])
    guardian_name = TextField('Guardian Name', [optional()])
    guardian_mobile_number = TextField('Guardian Mobile Number', [optional(), validators.Regexp(PHONE_PATTERN)])
    guardian_relation = TextField('Guardian Relation', [optional()])
    apaar_id = TextField('APAAR ID', [optional()])
    aadhar_number = TextField('Aadhar Number', [optional(), validators.Regexp(r'^\d{12}$', message='Aadhar number must be 12 digits.')])
    selected_elective_groups = ElectiveSelectionsField('Elective Selections', default=list)


class ElectiveSelectionForm(ApiForm):
    selected_elective_groups = ElectiveSelectionsField('Elective Selections', default=list)


class BusRouteForm(ApiForm):
    route_number = TextField('Route Number', [required()])
    route_name = TextField('Route Name', [required()])
    vehicle_number = TextField('Vehicle Number', [required()])
    driver_name = TextField('Driver Name', [required()])
    driver_contact_number = TextField('Driver Contact Number', [required(), validators.Regexp(PHONE_PATTERN)])
    bus_attender_name = TextField('Bus Attender Name', [optional()])
    bus_attender_contact_number = TextField('Bus Attender Contact Number', [optional(), validators.Regexp(PHONE_PATTERN)])
    stops = ObjectListField('Stops', default=list)

    def validate_stops(self, field):
        if len(field.data) < 2:
            raise ValidationError('Select at least 2 stops (starting and ending locations).')
        if any(not str(stop.get('address') or '').strip() for stop in field.data):
            raise ValidationError('Every stop needs an address.')


class SyllabusForm(ApiForm):
    year = TextField('Year', [required()])
    classname = TextField('Class', [required()])
    divisions = StringListField('Divisions', default=list)
    subject = TextField('Subject', [required()])
    chapter_lesson_no = TextField('Chapter/Lesson No', [required()])
    topic = TextField('Topic', [required()])
    description = TextField('Description', [optional()])
    status = SelectField('Status', choices=['active', 'inactive'], default='active')

    def validate_divisions(self, field):
        if not field.data:
            raise ValidationError('At least one division must be selected.')


class PeriodicTestForm(ApiForm):
    test_name = TextField('Test Name', [required()])
    year = TextField('Year', [required()])
    classname = TextField('Class', [required()])
    divisions = StringListField('Divisions', default=list)
    subject = TextField('Subject', [required()])
    chapters = StringListField('Chapters', default=list)
    test_date = TextField('Test Date', [required()])
    test_time = TextField('Test Time', [optional()])
    duration = TextField('Duration', [optional()])
    status = SelectField('Status', choices=['active', 'completed', 'cancelled'], default='active')

    def validate_divisions(self, field):
        if not field.data:
            raise ValidationError('At least one division must be selected.')

    def validate_chapters(self, field):
        if not field.data:
            raise ValidationError('At least one chapter must be selected.')


class MockTestForm(ApiForm):
    mock_name = TextField('Mock Name', [required()])
    description = TextField('Description', [optional()])
    mock_start_date = TextField('Start Date', [required()])
    mock_end_date = TextField('End Date', [required()])
    classes = StringListField('Classes', default=list)
    divisions = StringListField('Divisions', default=list)
    subjects = StringListField('Subjects', default=list)
    questions = ObjectListField('Questions', default=list)
    status = SelectField('Status', choices=['active', 'inactive'], default='active')

    def validate_mock_end_date(self, field):
        if self.mock_start_date.data and field.data and field.data < self.mock_start_date.data:
            raise ValidationError('End date cannot be before the start date.')

    def validate_questions(self, field):
        if not field.data:
            raise ValidationError('Add at least one question.')


class NewsCircularForm(ApiForm):
    event_type = TextField('Event Type', [required()])
    title = TextField('Title', [required(), validators.Length(max=200)])
    description = TextField('Description', [optional()])
    text = TextField('Text', [optional()])
    from_date = TextField('From Date', [required()])
    to_date = TextField('To Date', [required()])
    file_name = TextField('File Name', [optional()])
    file_path = TextField('File Path', [optional()])
    file_size = IntegerField('File Size', [optional(), validators.NumberRange(min=0, max=5 * 1024 * 1024)])

    def validate_to_date(self, field):
        if self.from_date.data and field.data and field.data < self.from_date.data:
            raise ValidationError('To date cannot be before from date.')


class PhotoGalleryForm(ApiForm):
    event_name = TextField('Event Name', [required()])
    event_type = TextField('Event Type', default='Others', filters=[lambda value: value or 'Others'])
    event_date = TextField('Event Date', [required()])
    description = TextField('Description', [optional()])
    photos = StringListField('Photos', default=list)


class PublicHolidayForm(ApiForm):
    year = TextField('Year', [required()])
    holiday_name = TextField('Holiday Name', [required()])
    holiday_date = TextField('Holiday Date', [required()])
    description = TextField('Description', [optional()])


class TimeTableForm(ApiForm):
    academic_year = TextField('Academic Year', [required()])
    classname = TextField('Class', [required()])
    division = TextField('Division', [required()])


class TimeTableEntryForm(ApiForm):
    day_of_week = SelectField('Day of Week', choices=DAYS_OF_WEEK)
    schedule_slot = TextField('Schedule Slot', [required()])
    subject = TextField('Subject', [required()])
    teacher_id = IntegerField('Teacher', [optional()])
    teacher_name = TextField('Teacher Name', [optional()])


class TeacherMappingForm(ApiForm):
    """Who teaches a subject in each division of a class."""

    classname = TextField('Class', [required()])
    subject = TextField('Subject', [required()])
    divisions = ObjectListField('Divisions', default=list)
    status = TextField('Status', default='Current working', filters=[lambda value: value or 'Current working'])

    def validate_divisions(self, field):
        if not field.data:
            raise ValidationError('Assign at least one division.')
        seen = set()
        for entry in field.data:
            division = str(entry.get('division') or '').strip()
            if not division:
                raise ValidationError('Every assignment needs a division.')
            if division in seen:
                raise ValidationError(f'Division "{division}" is assigned twice.')
            seen.add(division)
            teacher_id = entry.get('teacher_id')
            if teacher_id is not None and (isinstance(teacher_id, bool) or not isinstance(teacher_id, int)):
                raise ValidationError('teacher_id must be an integer.')


class WorkingDayForm(ApiForm):
    day_of_week = SelectField('Day of Week', choices=DAYS_OF_WEEK)
    day_type = SelectField('Day Type', choices=['FullDay', 'HalfDay', 'Holiday', 'AlternateWeek'], default='FullDay')
    alternate_weeks = StringListField('Alternate Weeks', default=list)
    timing_from = TextField('Timing From', [optional(), validators.Regexp(TIME_PATTERN, message='Use HH:MM.')])
    timing_to = TextField('Timing To', [optional(), validators.Regexp(TIME_PATTERN, message='Use HH:MM.')])

    def validate_alternate_weeks(self, field):
        if self.day_type.data == 'AlternateWeek' and not field.data:
            raise ValidationError('Pick the weeks an alternate-week day is worked.')
        if any(week not in ('W1', 'W2', 'W3', 'W4', 'W5') for week in field.data):
            raise ValidationError('Weeks must be W1 to W5.')

    def validate_timing_to(self, field):
        if self.timing_from.data and field.data and field.data <= self.timing_from.data:
            raise ValidationError('End time must be after start time.')

    def record_data(self):
        data = dict(self.data)
        if data['day_type'] != 'AlternateWeek':
            data['alternate_weeks'] = []
        if data['day_type'] == 'Holiday':
            data['timing_from'] = data['timing_to'] = None
        return data


class SchoolScheduleForm(ApiForm):
    """A period or break in the daily bell schedule."""

    day_of_week = SelectField('Day of Week', choices=DAYS_OF_WEEK)
    type = SelectField('Type', choices=['Period', 'Break', 'Others'], default='Period')
    name = TextField('Name', [required()])
    timing_from = TextField('Timing From', [required(), validators.Regexp(TIME_PATTERN, message='Use HH:MM.')])
    timing_to = TextField('Timing To', [required(), validators.Regexp(TIME_PATTERN, message='Use HH:MM.')])

    def validate_timing_to(self, field):
        if self.timing_from.data and field.data and field.data <= self.timing_from.data:
            raise ValidationError('End time must be after start time.')


class ResultEntryForm(ApiForm):
    """Marks for one division: ``results=[{student_id, marks: {subject: number|null}}]``."""

    division = TextField('Division', [required()])
    results = ObjectListField('Results', default=list)

    def validate_results(self, field):
        if not field.data:
            raise ValidationError('Enter marks for at least one student.')
        seen = set()
        for entry in field.data:
            student_id = entry.get('student_id')
            if isinstance(student_id, bool) or not isinstance(student_id, int):
                raise ValidationError('student_id must be an integer.')
            if student_id in seen:
                raise ValidationError(f'Student {student_id} is listed twice.')
            seen.add(student_id)
            marks = entry.get('marks')
            if not isinstance(marks, dict):
                raise ValidationError(f'Marks for student {student_id} must be an object.')
            for subject, mark in marks.items():
                if mark is None:
                    continue
                if isinstance(mark, bool) or not isinstance(mark, (int, float)) or mark < 0:
                    raise ValidationError(f'Mark for {subject} must be a non-negative number or null.')
