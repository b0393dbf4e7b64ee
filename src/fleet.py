""" fleet.py

Thin facade over the EC2 and Auto Scaling APIs consumed by the failover logic.

The facade holds no logic: each method is one typed API call (plus pagination where the API needs it).
botocore exceptions are propagated to the caller that owns the failure policy.
"""
from collections import namedtuple

import misc
import debug as Dbg

from aws_xray_sdk.core import xray_recorder
from aws_xray_sdk.core import patch_all
patch_all()

import icelog
log = icelog.logger(__name__)

LaunchTemplateRef = namedtuple("LaunchTemplateRef", ["id", "version"])
WarmPoolInstance  = namedtuple("WarmPoolInstance", ["id", "lifecycle_state", "instance_type"])

WARMED_STOPPED = "Warmed:Stopped"


class FleetClient:
    def __init__(self, context):
        self.context = context
        misc.initialize_clients(["ec2", "autoscaling"], context, region_name=context.get("Region"))
        self.ec2         = context["ec2.client"]
        self.autoscaling = context["autoscaling.client"]

    # Auto Scaling processes
    def suspend_processes(self, group_name, processes):
        self.autoscaling.suspend_processes(AutoScalingGroupName=group_name, ScalingProcesses=list(processes))

    def resume_processes(self, group_name, processes):
        self.autoscaling.resume_processes(AutoScalingGroupName=group_name, ScalingProcesses=list(processes))

    # Launch templates
    def get_launch_template_instance_type(self, launch_template_ref):
        """ Return the instance type of a launch template version or None if not set.
        """
        response = self.ec2.describe_launch_template_versions(
                LaunchTemplateId=launch_template_ref.id,
                Versions=[launch_template_ref.version])
        versions = response.get("LaunchTemplateVersions", [])
        if len(versions) == 0:
            return None
        return versions[0].get("LaunchTemplateData", {}).get("InstanceType")

    def create_launch_template_version(self, launch_template_ref, instance_type, description):
        """ Create a new version sourced from 'launch_template_ref' overriding only the instance type.

        Return the new version number as a string.
        """
        response = self.ec2.create_launch_template_version(
                LaunchTemplateId=launch_template_ref.id,
                SourceVersion=launch_template_ref.version,
                VersionDescription=description,
                LaunchTemplateData={
                    "InstanceType": instance_type
                })
        log.debug(Dbg.pprint(response))
        return str(response["LaunchTemplateVersion"]["VersionNumber"])

    def set_default_launch_template_version(self, launch_template_id, version):
        self.ec2.modify_launch_template(LaunchTemplateId=launch_template_id, DefaultVersion=str(version))

    # Warm pool
    def get_warm_pool_instances(self, group_name, max_records=None):
        instances = []
        query     = {"AutoScalingGroupName": group_name}
        if max_records:
            query["MaxRecords"] = max_records
        while True:
            response = self.autoscaling.describe_warm_pool(**query)
            for i in response.get("Instances", []):
                instances.append(WarmPoolInstance(i["InstanceId"], i.get("LifecycleState"), i.get("InstanceType")))
            if not response.get("NextToken"):
                break
            query["NextToken"] = response["NextToken"]
        return instances

    def modify_instance_type(self, instance_id, instance_type):
        self.ec2.modify_instance_attribute(InstanceId=instance_id, InstanceType={"Value": instance_type})

    # Capacity reservations
    def create_capacity_reservation(self, instance_type, availability_zone, platform, tenancy="default",
            end_date_type="unlimited", instance_match_criteria="targeted", tags=None):
        """ Reserve one instance of 'instance_type' in 'availability_zone'.

        Return the capacity reservation id (None if the API did not return one).
        """
        query = {
            "InstanceType": instance_type,
            "InstancePlatform": platform,
            "AvailabilityZone": availability_zone,
            "Tenancy": tenancy,
            "InstanceCount": 1,
            "EbsOptimized": False,
            "EphemeralStorage": False,
            "EndDateType": end_date_type,
            "InstanceMatchCriteria": instance_match_criteria
        }
        if tags:
            query["TagSpecifications"] = [{
                "ResourceType": "capacity-reservation",
                "Tags": [{"Key": k, "Value": v} for k, v in tags.items()]
                }]
        response = self.ec2.create_capacity_reservation(**query)
        return response.get("CapacityReservation", {}).get("CapacityReservationId")

    def cancel_capacity_reservation(self, capacity_reservation_id):
        """ Return True if EC2 acknowledged the cancellation.
        """
        response = self.ec2.cancel_capacity_reservation(CapacityReservationId=capacity_reservation_id)
        return bool(response.get("Return", False))
