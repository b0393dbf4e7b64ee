""" iceevent.py

Parse the payload delivered for an Insufficient Capacity Error.

Expected shape:

    {
      "originalEvent": {
        "account": "...", "region": "...",
        "detail": {
          "requestParameters": {
            "availabilityZone": "...",
            "launchTemplate": {"launchTemplateId": "...", "version": "..."},
            "tagSpecificationSet": {"items": [{"tags": [{"key": "...", "value": "..."}]}]}
          }
        }
      },
      "mixedTypes": ["m5.large", ...],
      "slackChannel": "..."
    }
"""
from collections import namedtuple

import icelog
log = icelog.logger(__name__)

IceEvent = namedtuple("IceEvent", [
    "tags",
    "launch_template_id",
    "launch_template_version",
    "availability_zone",
    "account_id",
    "region",
    "candidate_types",
    "alert_destination"
    ])


class InvalidEventError(ValueError):
    pass


def _get(d, path):
    v = d
    for p in path:
        if not isinstance(v, dict) or p not in v:
            raise InvalidEventError("Missing '%s' in ICE event!" % ".".join(path))
        v = v[p]
    return v

def parse(event):
    """ Build an immutable IceEvent from the raw event dict.

    Raise InvalidEventError when a mandatory field is missing.
    """
    if not isinstance(event, dict):
        raise InvalidEventError("ICE event must be a dict (got %s)!" % type(event).__name__)
    original = _get(event, ["originalEvent"])
    params   = _get(original, ["detail", "requestParameters"])

    items = _get(params, ["tagSpecificationSet", "items"])
    if not isinstance(items, list) or len(items) == 0:
        raise InvalidEventError("ICE event has an empty 'tagSpecificationSet'!")
    tags = []
    for t in items[0].get("tags", []):
        if not isinstance(t, dict) or "key" not in t or "value" not in t:
            raise InvalidEventError("Malformed tag '%s' in ICE event!" % t)
        tags.append((t["key"], t["value"]))
    tags = tuple(tags)

    candidates = event.get("mixedTypes")
    if not isinstance(candidates, list):
        raise InvalidEventError("'mixedTypes' must be a list of instance types!")

    return IceEvent(
            tags=tags,
            launch_template_id=_get(params, ["launchTemplate", "launchTemplateId"]),
            launch_template_version=str(_get(params, ["launchTemplate", "version"])),
            availability_zone=_get(params, ["availabilityZone"]),
            account_id=_get(original, ["account"]),
            region=_get(original, ["region"]),
            candidate_types=tuple(candidates),
            alert_destination=event.get("slackChannel", "")
        )
