"""Custom JSON encoder to handle datetime objects and other non-serializable types."""
import base64
import datetime
import json
import math
from decimal import Decimal

from pydantic import BaseModel


class CustomJSONEncoder(json.JSONEncoder):
    """Custom JSON encoder to handle datetime objects and other non-serializable types."""

    def default(self, o):
        if isinstance(o, (datetime.datetime, datetime.date, datetime.time)):
            return o.isoformat()
        elif isinstance(o, datetime.timedelta):
            return str(o)
        elif isinstance(o, Decimal):
            return float(o)
        elif isinstance(o, (bytes, bytearray)):
            return base64.b64encode(bytes(o)).decode("ascii")
        elif isinstance(o, BaseModel):
            return o.model_dump(mode="json")
        elif hasattr(o, "item") and callable(getattr(o, "item", None)):
            # numpy scalars coming out of pandas
            try:
                return o.item()
            except (TypeError, ValueError):
                pass
        elif hasattr(o, "to_dict") and callable(getattr(o, "to_dict", None)):
            try:
                result = o.to_dict()
                if isinstance(result, dict) and result is not o:
                    return result
            except (TypeError, AttributeError, RecursionError):
                pass
        return super(CustomJSONEncoder, self).default(o)


def clean_json_value(value):
    """Replace non-finite floats with None so the result is strict JSON."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: clean_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [clean_json_value(v) for v in value]
    return value


def dumps(obj, **kwargs) -> str:
    """Serialize ``obj`` with :class:`CustomJSONEncoder`."""
    return json.dumps(clean_json_value(obj), cls=CustomJSONEncoder, **kwargs)
