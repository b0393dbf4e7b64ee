""" orchestrator.py

Sequence the reaction to one ICE event:

    Idle -> Suspended -> Probing -> {Updating | Skipped} -> Resumed -> Done

Only input errors (malformed event, missing tag) abort the invocation, and they always do so before the scaling
processes are suspended. Once suspended, the processes are resumed on every exit path.
"""
import json
from contextlib import contextmanager

import config as Cfg
import tags
from fleet import LaunchTemplateRef
from capacity import CapacityProber
from failover import FailoverExecutor
from alerting import AlertingMgr

from aws_xray_sdk.core import xray_recorder

import icelog
log = icelog.logger(__name__)

UNKNOWN_INSTANCE_TYPE = "unknown"


@contextmanager
def suspended_processes(fleet, group_name, processes):
    """ Suspend the scaling processes of a group for the duration of the block.

    Resume is attempted on every exit, even if the suspension failed or the block raised.
    """
    try:
        fleet.suspend_processes(group_name, processes)
        log.info("Suspend %s process for Auto Scaling Group: %s" % (processes, group_name))
    except Exception as e:
        log.exception("Error in Suspend %s process for Auto Scaling Group: %s : %s" % (processes, group_name, e))
    try:
        yield
    finally:
        try:
            fleet.resume_processes(group_name, processes)
            log.info("Resume %s process for Auto Scaling Group: %s" % (processes, group_name))
        except Exception as e:
            log.exception("Error in Resume %s process for Auto Scaling Group: %s : %s" % (processes, group_name, e))


class Orchestrator:
    def __init__(self, context, fleet, alerting_factory=AlertingMgr, prober=None, executor=None):
        self.context          = context
        self.fleet            = fleet
        self.alerting_factory = alerting_factory
        self.prober           = prober if prober is not None else CapacityProber(context, fleet)
        self.executor         = executor if executor is not None else FailoverExecutor(context, fleet)
        tags.register_config()
        Cfg.register({
                 "app.scaling_processes,Stable" : {
                     "DefaultValue": "Launch",
                     "Format"      : "StringList",
                     "Description" : """Auto Scaling processes suspended while the instance type is being changed."""
                 }
        }, ignore_double_definition=True)

    def current_instance_type(self, launch_template_ref, group_name):
        try:
            instance_type = self.fleet.get_launch_template_instance_type(launch_template_ref)
        except Exception as e:
            log.exception("[%s] Error reading instance type of launch template '%s' version %s : %s" %
                    (group_name, launch_template_ref.id, launch_template_ref.version, e))
            return UNKNOWN_INSTANCE_TYPE
        return instance_type if instance_type else UNKNOWN_INSTANCE_TYPE

    @xray_recorder.capture(name="Orchestrator.run")
    def run(self, ice_event):
        """ Handle one ICE event and return the acknowledgment sent back to the trigger.

        Raise tags.TagNotFound if a mandatory tag is missing.
        """
        group_name, environment = tags.resolve_group_identity(ice_event.tags)
        launch_template_ref     = LaunchTemplateRef(ice_event.launch_template_id, ice_event.launch_template_version)
        zone                    = ice_event.availability_zone
        candidates              = list(ice_event.candidate_types)
        processes               = Cfg.get_list("app.scaling_processes", default=["Launch"])

        alerting = self.alerting_factory(self.context, ice_event.alert_destination, environment)
        subject  = alerting.subject(group_name)

        instance_type = self.current_instance_type(launch_template_ref, group_name)
        log.log(log.NOTICE, "[%s] ICE for %s in %s (env=%s). Candidates: %s" % (group_name, instance_type, zone, environment, candidates))
        alerting.notify(subject,
                "%s in %s has insufficient capacity.\nChecking alternative instance types." % (instance_type, zone))

        with suspended_processes(self.fleet, group_name, processes):
            result = self.prober.probe(candidates, zone)
            if result.found:
                log.log(log.NOTICE, "[%s] Switching to instance type '%s'." % (group_name, result.instance_type))
                self.executor.apply_failover(launch_template_ref, result.instance_type, group_name)
                alerting.notify(subject,
                        "Capacity available for %s!\nSwitching to available instance type." % result.instance_type)
            else:
                log.log(log.NOTICE, "[%s] No alternative instance type available. Keeping '%s'." % (group_name, instance_type))
                alerting.notify(subject,
                        "[%s] are all out of capacity.\nResuming ASG Launch Process and trying again." % ",".join(candidates))

        return {
            "statusCode": 200,
            "body": json.dumps({
                "message": "ICE failover executed successfully!"
            })
        }
