"""
FastAPI dependencies - the authenticated student.

Token verification happens upstream; the gateway forwards the verified
claims as X-Student-* headers.
"""

from typing import Optional
from fastapi import Header

from retest_api.errors import NotAuthenticated
from retest_api.schemas import StudentClaims


def _to_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except ValueError:
        return None


def parse_class_name(value: Optional[str]) -> Optional[int]:
    """Class claims come as "grade/class" ("1/15") or a bare number ("15")."""
    if not value:
        return None
    if "/" in value:
        value = value.split("/", 1)[1]
    return _to_int(value)


def get_current_student(
    x_student_id: Optional[str] = Header(None),
    x_student_name: Optional[str] = Header(None),
    x_student_surname: Optional[str] = Header(None),
    x_student_nickname: Optional[str] = Header(None),
    x_student_grade: Optional[str] = Header(None),
    x_student_class: Optional[str] = Header(None),
    x_student_number: Optional[str] = Header(None),
) -> StudentClaims:
    if not x_student_id:
        raise NotAuthenticated()
    return StudentClaims(
        student_id=x_student_id,
        name=x_student_name,
        surname=x_student_surname,
        nickname=x_student_nickname,
        grade=_to_int(x_student_grade),
        class_name=parse_class_name(x_student_class),
        number=_to_int(x_student_number),
    )
