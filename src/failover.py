""" failover.py

Redirect an Auto Scaling group to a new instance type.

Two independent best-effort steps, none rolling back the other:
    * Launch template: a new version overriding only the instance type is created from the source version, then
      made the default. The default is never moved if the version creation failed.
    * Warm pool: every 'Warmed:Stopped' instance gets its instance type changed. Each instance is processed
      independently; instances in any other state (ex: 'Warmed:Running') are never touched.
"""
import config as Cfg
import debug as Dbg
from fleet import WARMED_STOPPED

from aws_xray_sdk.core import xray_recorder

import icelog
log = icelog.logger(__name__)


class FailoverExecutor:
    def __init__(self, context, fleet):
        self.context = context
        self.fleet   = fleet
        Cfg.register({
                 "failover.launch_template.version_description" : "Updated Instance Type for ICE Event",
                 "failover.warm_pool.enabled,Stable" : {
                     "DefaultValue": "1",
                     "Format"      : "Bool",
                     "Description" : """Change the instance type of 'Warmed:Stopped' warm pool instances on failover."""
                 },
                 "failover.warm_pool.max_records" : "0"
        }, ignore_double_definition=True)

    @xray_recorder.capture(name="FailoverExecutor.apply_failover")
    def apply_failover(self, launch_template_ref, new_type, group_name):
        """ Apply 'new_type' to the launch template and the stopped warm pool instances of 'group_name'.

        Never raises on AWS failures. Return a report dict describing what was done.
        """
        report = {
            "GroupName": group_name,
            "InstanceType": new_type,
            "LaunchTemplateId": launch_template_ref.id,
            "NewVersion": None,
            "DefaultVersionSet": False,
            "UpdatedInstances": [],
            "FailedInstances": [],
            "SkippedInstances": []
        }
        self.update_launch_template(launch_template_ref, new_type, group_name, report)
        if Cfg.get_int("failover.warm_pool.enabled"):
            self.update_stopped_instances(group_name, new_type, report)
        else:
            log.info("[%s] Warm pool update disabled (failover.warm_pool.enabled=0)." % group_name)
        log.debug(Dbg.pprint(report))
        return report

    def update_launch_template(self, launch_template_ref, new_type, group_name, report):
        try:
            version = self.fleet.create_launch_template_version(launch_template_ref, new_type,
                    Cfg.get("failover.launch_template.version_description"))
        except Exception as e:
            log.exception("[%s] Error creating new version of launch template '%s' (source version %s) : %s" %
                    (group_name, launch_template_ref.id, launch_template_ref.version, e))
            return
        report["NewVersion"] = version
        log.info("[%s] New launch template version %s created for '%s' (InstanceType=%s)." %
                (group_name, version, launch_template_ref.id, new_type))

        try:
            self.fleet.set_default_launch_template_version(launch_template_ref.id, version)
        except Exception as e:
            log.exception("[%s] Error setting version %s as default of launch template '%s' : %s" %
                    (group_name, version, launch_template_ref.id, e))
            return
        report["DefaultVersionSet"] = True
        log.info("[%s] Launch template '%s' version %s set as default!" % (group_name, launch_template_ref.id, version))

    def update_stopped_instances(self, group_name, new_type, report):
        try:
            max_records = Cfg.get_int("failover.warm_pool.max_records")
            instances   = self.fleet.get_warm_pool_instances(group_name, max_records=max_records if max_records > 0 else None)
        except Exception as e:
            log.exception("[%s] Error getting warm pool instances : %s" % (group_name, e))
            return
        log.info("[%s] Getting '%s' instances among %d warm pool instance(s)." % (group_name, WARMED_STOPPED, len(instances)))

        for instance in instances:
            if instance.lifecycle_state != WARMED_STOPPED:
                log.debug("[%s] Instance '%s' in state '%s' left untouched." % (group_name, instance.id, instance.lifecycle_state))
                continue
            if instance.instance_type == new_type:
                log.info("[%s] Instance '%s' is already a %s." % (group_name, instance.id, new_type))
                report["SkippedInstances"].append(instance.id)
                continue
            try:
                self.fleet.modify_instance_type(instance.id, new_type)
            except Exception as e:
                log.exception("[%s] Error setting instance type of warm pool instance '%s' to %s : %s" %
                        (group_name, instance.id, new_type, e))
                report["FailedInstances"].append(instance.id)
                continue
            report["UpdatedInstances"].append(instance.id)
            log.info("[%s] Instance '%s' changed to: %s" % (group_name, instance.id, new_type))
