from flask import request

from hugos.errors import ValidationError


def json_body():
    """Request JSON as a dict; anything else counts as an empty body"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_fields(data, *names, kind=None):
    """Values of the named fields, in order.

    Raises ValidationError for missing or empty fields and, when ``kind``
    is given, for values of another type.
    """
    missing = [name for name in names if data.get(name) in (None, '', [])]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)
    if kind is not None:
        wrong = [name for name in names if not isinstance(data[name], kind)]
        if wrong:
            raise ValidationError(f"Fields must be {kind.__name__}: {', '.join(wrong)}", fields=wrong)
    return [data[name] for name in names]


def optional_field(data, name, kind=str):
    """Value of an optional field, None when absent; wrong types raise ValidationError"""
    value = data.get(name)
    if value is not None and not isinstance(value, kind):
        raise ValidationError(f'{name} must be {kind.__name__}', fields=[name])
    return value
