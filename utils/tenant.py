from __future__ import annotations

import re
from typing import Optional

from flask import current_app, g, request, session

from extensions import db
from models import School
from utils.errors import NotFoundError


def slugify_code(name_or_code: str) -> str:
    code = name_or_code.strip().lower()
    code = re.sub(r"[^a-z0-9]+", "-", code).strip("-")
    # enforce a minimal code
    return code or "school"


def get_or_create_school(code: str, name: Optional[str] = None) -> School:
    """Return the school for code; create it using name (or the code) if missing."""
    code = slugify_code(code)
    school = School.query.filter_by(code=code).first()
    if school is None:
        school = School(code=code, name=name or code)
        db.session.add(school)
        db.session.commit()
        current_app.logger.info("Created school %s", code)
    return school


def current_school_id() -> int:
    """Resolve the tenant for this request.

    Order: session, ``X-School-Code`` header, DEFAULT_SCHOOL_CODE.
    """
    cached = getattr(g, "school_id", None)
    if cached is not None:
        return cached
    school_id = session.get("school_id")
    if school_id is None:
        header = (request.headers.get("X-School-Code") or "").strip()
        if header:
            school = School.query.filter_by(code=slugify_code(header)).first()
            if school is None:
                raise NotFoundError(f"Unknown school: {header}")
            school_id = school.id
    if school_id is None:
        school_id = get_or_create_school(
            current_app.config.get("DEFAULT_SCHOOL_CODE", "main"),
            current_app.config.get("DEFAULT_SCHOOL_NAME"),
        ).id
    g.school_id = school_id
    return school_id
