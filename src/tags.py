""" tags.py

Resolve identifiers from the tag set carried by an ICE event.

Tags are ordered (key, value) pairs. CloudTrail delivers them as [{"key": ..., "value": ...}]; both shapes are accepted.
"""
import config as Cfg

import icelog
log = icelog.logger(__name__)

GROUP_NAME_TAG  = "aws:autoscaling:groupName"
ENVIRONMENT_TAG = "t_env"


class TagNotFound(KeyError):
    def __init__(self, key):
        super().__init__(key)
        self.key = key

    def __str__(self):
        return "Tag %s not found!" % self.key


def _pair(tag):
    if isinstance(tag, dict):
        return tag.get("key"), tag.get("value")
    return tag[0], tag[1]

def resolve(tags, key):
    """ Return the value of the first tag named 'key' (exact match).

    Raise TagNotFound if no tag has this key.
    """
    for tag in tags:
        k, v = _pair(tag)
        if k == key:
            return v
    raise TagNotFound(key)


def register_config():
    Cfg.register({
             "tags.group_name_key,Stable" : {
                 "DefaultValue": GROUP_NAME_TAG,
                 "Format"      : "String",
                 "Description" : """Event tag holding the name of the Auto Scaling group that hit the ICE.
                 """
             },
             "tags.environment_key,Stable" : {
                 "DefaultValue": ENVIRONMENT_TAG,
                 "Format"      : "String",
                 "Description" : """Event tag holding the environment label. The label selects the alert routing (see `alerting.lab_environments`).
                 """
             }
        }, ignore_double_definition=True)

def resolve_group_identity(tags):
    """ Return the (group_name, environment) tuple of an ICE event.
    """
    group_name_key  = Cfg.get("tags.group_name_key", none_on_failure=True) or GROUP_NAME_TAG
    environment_key = Cfg.get("tags.environment_key", none_on_failure=True) or ENVIRONMENT_TAG
    group_name  = resolve(tags, group_name_key)
    environment = resolve(tags, environment_key)
    log.debug("Resolved group identity: group_name=%s, environment=%s" % (group_name, environment))
    return group_name, environment
