from marshmallow import Schema, fields

class MeOut(Schema):
    username = fields.String(required=True)
    sync_number = fields.Integer(required=True, data_key="syncNumber")
    last_activity_date = fields.String(required=True, data_key="lastActivityDate")

class IssuedClientOut(Schema):
    username = fields.String(required=True)
    token = fields.String(required=True)
