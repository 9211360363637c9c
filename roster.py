"""
Roster and subject-applicability helpers.

Pure functions over records already fetched from the database:
  - resolve_subjects: core subjects and elective groups for a class
  - build_matrix: per-student "N/A" subjects from elective selections
  - assign_on_create / reorder: alphabetical roll numbers in a class-division

Nothing here touches the database. Callers persist the returned updates.
"""

import logging
import unicodedata
from bisect import bisect_right
from typing import Dict, Iterable, List, NamedTuple, Set

logger = logging.getLogger(__name__)


class ElectiveGroup(NamedTuple):
    group_name: str
    subjects: List[str]


class SubjectResolution(NamedTuple):
    core_subjects: List[str]
    elective_groups: List[ElectiveGroup]


class RollUpdate(NamedTuple):
    student_id: int
    roll_number: int


class RollAssignment(NamedTuple):
    roll_number: int
    roster_updates: List[RollUpdate]


def _append_unique(target, values):
    for value in values or []:
        if value not in target:
            target.append(value)


def elective_group_from(value):
    """Coerce a stored group dict (or ElectiveGroup) into an ElectiveGroup."""
    if isinstance(value, ElectiveGroup):
        return value
    name = str((value or {}).get('group_name') or '').strip()
    subjects = []
    _append_unique(subjects, [str(s).strip() for s in (value or {}).get('subjects') or [] if str(s).strip()])
    return ElectiveGroup(name, subjects)


def group_matches_test_subject(group_name, test_subject):
    """Loose match used to tie a scheduled test subject to an elective group."""
    if not group_name or not test_subject:
        return False
    return test_subject == group_name or group_name in test_subject or test_subject in group_name


def resolve_subjects(class_mappings, target_class, test_subjects=None) -> SubjectResolution:
    """Collect core subjects and elective groups for a class across all its divisions."""
    core: List[str] = []
    groups: Dict[str, List[str]] = {}
    for mapping in class_mappings or []:
        if mapping.get('classname') != target_class:
            continue
        _append_unique(core, mapping.get('subjects'))
        for raw_group in mapping.get('elective_groups') or []:
            group = elective_group_from(raw_group)
            if not group.group_name:
                continue
            _append_unique(groups.setdefault(group.group_name, []), group.subjects)

    elective_members = {subject for members in groups.values() for subject in members}
    core = [subject for subject in core if subject not in elective_members]
    elective_groups = [ElectiveGroup(name, members) for name, members in groups.items()]

    if test_subjects is not None:
        scheduled = set(test_subjects)
        core = [subject for subject in core if subject in scheduled]
        elective_groups = [
            group for group in elective_groups
            if any(group_matches_test_subject(group.group_name, s) for s in scheduled)
        ]

    return SubjectResolution(core, elective_groups)


def selections_by_group(student) -> Dict[str, str]:
    """Map group name -> chosen subject; a repeated group keeps the last entry."""
    selected = {}
    for entry in student.get('selected_elective_groups') or []:
        group_name = (entry or {}).get('group_name')
        if group_name:
            selected[group_name] = (entry or {}).get('selected_subject') or ''
    return selected


def build_matrix(students, elective_group_info) -> Dict[int, Set[str]]:
    """Return the set of not-applicable subjects for every student id."""
    matrix = {}
    for student in students or []:
        chosen = selections_by_group(student)
        applicable = {}
        for group_name, subjects in (elective_group_info or {}).items():
            selected = chosen.get(group_name)
            for subject in subjects or []:
                # later groups overwrite earlier ones for shared subject names
                applicable[subject] = selected is not None and subject == selected
        matrix[student['id']] = {subject for subject, ok in applicable.items() if not ok}
    return matrix


def name_sort_key(first_name):
    """Accent-blind, case-blind order; accents then lowercase break ties."""
    name = first_name or ''
    base = ''.join(ch for ch in unicodedata.normalize('NFKD', name) if not unicodedata.combining(ch))
    return (base.casefold(), name.casefold(), name.swapcase())


def _alphabetical(roster):
    # Current roll order first so equal names keep their relative position.
    by_roll = sorted(roster or [], key=lambda s: (s.get('roll_number') or 0, s.get('id') or 0))
    return sorted(by_roll, key=lambda s: name_sort_key(s.get('first_name')))


def assign_on_create(existing_roster, new_student) -> RollAssignment:
    """Pick the new student's roll number and the shifts it causes in the roster."""
    ordered = _alphabetical(existing_roster)
    keys = [name_sort_key(s.get('first_name')) for s in ordered]
    index = bisect_right(keys, name_sort_key(new_student.get('first_name')))
    updates = [RollUpdate(student['id'], position + 2) for position, student in enumerate(ordered) if position >= index]
    logger.debug("Roll %s assigned to %r, %d students shifted", index + 1, new_student.get('first_name'), len(updates))
    return RollAssignment(index + 1, updates)


def reorder(roster) -> List[RollUpdate]:
    """Roll numbers 1..n in alphabetical order of first name."""
    return [RollUpdate(student['id'], position) for position, student in enumerate(_alphabetical(roster), 1)]


def changed_updates(roster, updates: Iterable[RollUpdate]) -> List[RollUpdate]:
    """Drop updates that would leave a student's roll number as it is."""
    current = {student['id']: student.get('roll_number') for student in roster or []}
    return [update for update in updates if current.get(update.student_id) != update.roll_number]


def group_info(groups: Iterable[ElectiveGroup]) -> Dict[str, List[str]]:
    return {group.group_name: list(group.subjects) for group in groups}
