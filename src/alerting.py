import json
import uuid

import misc
import config as Cfg
import debug as Dbg

from aws_xray_sdk.core import xray_recorder
from aws_xray_sdk.core import patch_all
patch_all()

import icelog
log = icelog.logger(__name__)

def register_config():
    Cfg.register({
       "alerting.disable,Stable": {
            "DefaultValue": "0",
            "Format"      : "Bool",
            "Description" : """Disable publication of chat alerts. Alerts are still written in the logs."""
       },
       "alerting.subject,Stable": {
            "DefaultValue": "-- ICE Alert: {GroupName}  --",
            "Format"      : "String",
            "Description" : """Subject of the chat alerts. '{GroupName}' is replaced by the Auto Scaling group name."""
       },
       "alerting.lab_environments,Stable": {
            "DefaultValue": "lab",
            "Format"      : "StringList",
            "Description" : """Environment tag values routed to the lab topic (see `alerting.topic_arn.lab`).

All other environments are routed to the production topic.
            """
       },
       "alerting.topic_arn.lab,Stable": {
            "DefaultValue": "arn:aws:sns:{Region}:{AccountId}:platform-communications-{Region}.fifo",
            "Format"      : "String",
            "Description" : """SNS topic ARN pattern for lab environments."""
       },
       "alerting.topic_arn.production,Stable": {
            "DefaultValue": "arn:aws:sns:{Region}:{AccountId}:platform-communications-prod-{Region}.fifo",
            "Format"      : "String",
            "Description" : """SNS topic ARN pattern for all non-lab environments."""
       }
    }, ignore_double_definition=True)


class AlertingMgr:
    """ Publish chat alerts through an SNS FIFO topic consumed by the chat relay.

    Alerting is best-effort: notify() never raises.
    """
    def __init__(self, context, destination, environment):
        self.context     = context
        self.destination = destination
        self.environment = environment
        register_config()

    def topic_arn(self):
        fmt = {
            "Region": self.context.get("Region"),
            "AccountId": self.context.get("AccountId")
        }
        if self.environment in Cfg.get_list("alerting.lab_environments", default=[]):
            return Cfg.get("alerting.topic_arn.lab", fmt=fmt)
        return Cfg.get("alerting.topic_arn.production", fmt=fmt)

    def subject(self, group_name):
        return Cfg.get("alerting.subject", fmt={"GroupName": group_name})

    @xray_recorder.capture(name="AlertingMgr.notify")
    def notify(self, subject, message):
        message_j = json.dumps({
                "ImChannel": "%s" % self.destination,
                "Subject": subject,
                "Message": message,
                "Version": 1
            })
        if Cfg.get_int("alerting.disable"):
            log.info("Alerting disabled. Not sent: %s" % message_j)
            return False

        try:
            misc.initialize_clients(["sns"], self.context, region_name=self.context.get("Region"))
            topic_arn = self.topic_arn()
            group_id  = str(uuid.uuid4())
            response  = self.context["sns.client"].publish(
                    TopicArn=topic_arn,
                    Message=message_j,
                    MessageGroupId=group_id
                )
            log.debug(Dbg.pprint(response))
            log.info("<Sent Message %s to '%s'>" % (group_id, topic_arn))
            return True
        except Exception as e:
            log.exception("Error publishing message '%s' : %s" % (message_j, e))
            return False
