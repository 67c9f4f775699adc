from marshmallow import Schema, ValidationError, fields, validate

from notesync.notes.merge import parse_timestamp

_flag = validate.OneOf([0, 1])


def _iso_timestamp(value: str):
    try:
        parse_timestamp(value)
    except ValueError:
        raise ValidationError("Not a valid ISO-8601 timestamp.")


class NoteHeadSchema(Schema):
    id = fields.String(required=True, validate=validate.Length(min=1, max=128))
    modification_date = fields.String(required=True, validate=_iso_timestamp)


class NoteSchema(NoteHeadSchema):
    text = fields.String(required=True, allow_none=True)
    not_archived = fields.Integer(required=True, strict=True, validate=_flag)
    pinned = fields.Integer(required=True, strict=True, validate=_flag)
    not_deleted = fields.Integer(required=True, strict=True, validate=_flag)
