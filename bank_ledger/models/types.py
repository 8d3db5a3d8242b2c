"""Column type helpers shared by the ORM models."""

import enum

from sqlalchemy import Enum


def str_enum(enum_cls: type[enum.Enum], length: int = 20) -> Enum:
    """
    Store a str-valued enum as its plain value in a VARCHAR column.

    native_enum=False keeps the schema portable between SQLite and PostgreSQL
    (no CREATE TYPE), and values_callable stores "approved" rather than the
    member name "APPROVED".
    """
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
