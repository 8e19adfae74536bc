"""Stateless field rules applied before a user is admitted or amended."""

from __future__ import annotations

from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email

from mcp_user_store.domain.field_update import UNSET, Unset

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 100
DEPARTMENT_MAX_LENGTH = 50
ROLE_MAX_LENGTH = 50

SQL_INTEGER_MAX = 2**63 - 1


@dataclass(frozen=True)
class FieldViolation:
    """One failed rule for one input field."""

    field: str
    message: str


def validate_user_create(
    *,
    name: str | None,
    email: str | None,
    department: str | None,
    role: str | None,
    field_prefix: str = "",
) -> list[FieldViolation]:
    """Check every creation field independently and return all violations."""

    checks = (
        _check_name(name, field=f"{field_prefix}name"),
        _check_email(email, field=f"{field_prefix}email"),
        _check_required_text(
            department,
            field=f"{field_prefix}department",
            max_length=DEPARTMENT_MAX_LENGTH,
        ),
        _check_required_text(role, field=f"{field_prefix}role", max_length=ROLE_MAX_LENGTH),
    )
    return [violation for violation in checks if violation is not None]


def validate_user_update(
    *,
    name: str | None | Unset = UNSET,
    email: str | None | Unset = UNSET,
    department: str | None | Unset = UNSET,
    role: str | None | Unset = UNSET,
    active: bool | None | Unset = UNSET,
) -> list[FieldViolation]:
    """Check only the supplied update fields, using the creation rules.

    Absent fields are never violations. An explicit ``None`` is rejected for
    every field because none of them can be cleared.
    """

    violations: list[FieldViolation] = []
    supplied = {
        "name": name,
        "email": email,
        "department": department,
        "role": role,
        "active": active,
    }
    for field, value in supplied.items():
        if value is None:
            violations.append(FieldViolation(field, f"{field} cannot be cleared"))

    if isinstance(name, str):
        _append(violations, _check_name(name, field="name"))
    if isinstance(email, str):
        _append(violations, _check_email(email, field="email"))
    if isinstance(department, str):
        _append(
            violations,
            _check_required_text(department, field="department", max_length=DEPARTMENT_MAX_LENGTH),
        )
    if isinstance(role, str):
        _append(violations, _check_required_text(role, field="role", max_length=ROLE_MAX_LENGTH))
    return violations


def validate_result_window(*, limit: int, offset: int) -> list[FieldViolation]:
    """Check limit/offset paging hints for filtered search."""

    violations: list[FieldViolation] = []
    if limit < 1:
        violations.append(FieldViolation("limit", "limit must be at least 1"))
    elif limit > SQL_INTEGER_MAX:
        violations.append(FieldViolation("limit", f"limit must be at most {SQL_INTEGER_MAX}"))
    if offset < 0:
        violations.append(FieldViolation("offset", "offset must not be negative"))
    elif offset > SQL_INTEGER_MAX:
        violations.append(FieldViolation("offset", f"offset must be at most {SQL_INTEGER_MAX}"))
    return violations


def validate_page_request(*, page: int, size: int) -> list[FieldViolation]:
    """Check zero-based page number and page size."""

    violations: list[FieldViolation] = []
    if page < 0:
        violations.append(FieldViolation("page", "page must not be negative"))
    if size < 1:
        violations.append(FieldViolation("size", "size must be at least 1"))
    elif size > SQL_INTEGER_MAX:
        violations.append(FieldViolation("size", f"size must be at most {SQL_INTEGER_MAX}"))
    if not violations and page * size > SQL_INTEGER_MAX:
        violations.append(FieldViolation("page", f"page is out of range for size {size}"))
    return violations


def is_well_formed_email(value: str) -> bool:
    """Return whether value is a syntactically valid address; DNS is not consulted."""

    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _check_name(value: str | None, *, field: str) -> FieldViolation | None:
    if value is None or not value.strip():
        return FieldViolation(field, f"{field} is required")
    length = len(value.strip())
    if length < NAME_MIN_LENGTH or length > NAME_MAX_LENGTH:
        return FieldViolation(
            field,
            f"{field} must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters",
        )
    return None


def _check_email(value: str | None, *, field: str) -> FieldViolation | None:
    if value is None or not value.strip():
        return FieldViolation(field, f"{field} is required")
    candidate = value.strip()
    if len(candidate) > EMAIL_MAX_LENGTH:
        return FieldViolation(field, f"{field} must be at most {EMAIL_MAX_LENGTH} characters")
    if not is_well_formed_email(candidate):
        return FieldViolation(field, f"{field} must be a well-formed email address")
    return None


def _check_required_text(value: str | None, *, field: str, max_length: int) -> FieldViolation | None:
    if value is None or not value.strip():
        return FieldViolation(field, f"{field} is required")
    if len(value.strip()) > max_length:
        return FieldViolation(field, f"{field} must be at most {max_length} characters")
    return None


def _append(violations: list[FieldViolation], violation: FieldViolation | None) -> None:
    if violation is not None:
        violations.append(violation)
