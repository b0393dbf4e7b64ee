import json
import re

import icelog
log = icelog.logger(__name__)

def pprint(json_obj):
    return json.dumps(json_obj, indent=4, sort_keys=True, default=str)


def _account_id_detector(s):
    replacements = []
    text = s if isinstance(s, str) else json.dumps(s, default=str)
    for m in re.findall("arn:[a-z-]+:[a-z0-9-]+:[-a-z0-9]*:([0-9]{12}):", text):
        replacements.append({
            "Keyword": m,
            "Replacement": "XXXXXXXXXXXX"
            })
    for m in re.findall(r'"(?:account|accountId|recipientAccountId)":\s*"([0-9]{12})"', text):
        replacements.append({
            "Keyword": m,
            "Replacement": "XXXXXXXXXXXX"
            })
    return replacements

def _replace_strings(s, detected_sensitive_strings):
    for sensitive in detected_sensitive_strings:
        s = s.replace(sensitive["Keyword"], sensitive["Replacement"])
    return s

def obfuscate(json_obj):
    """ Return a pretty-printed copy of the supplied structure with AWS account ids masked.
    """
    s = pprint(json_obj)
    return _replace_strings(s, _account_id_detector(s))
