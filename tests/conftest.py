# pylint:disable=redefined-outer-name

import copy
import os

os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ["AWS_XRAY_SDK_ENABLED"] = "false"
os.environ.setdefault("AWS_XRAY_CONTEXT_MISSING", "LOG_ERROR")

import pytest
from botocore.exceptions import ClientError

import config as Cfg
from fleet import WarmPoolInstance


def client_error(code, operation):
    return ClientError({"Error": {"Code": code, "Message": "%s failed" % operation}}, operation)


class FakeFleet:
    """ In-memory Compute Fleet recording every call.

    capacity: instance types with capacity (reservation creation succeeds).
    """
    def __init__(self, capacity=(), instance_type="m5.large", warm_pool=None):
        self.capacity              = set(capacity)
        self.cancel_failures       = set()
        self.cancel_not_acked      = set()
        self.fail_create_version   = False
        self.fail_set_default      = False
        self.fail_describe_lt      = False
        self.fail_warm_pool        = False
        self.fail_suspend          = False
        self.fail_resume           = False
        self.modify_failures       = set()
        self.versions              = {"1": instance_type}
        self.default_version       = "1"
        self.warm_pool             = list(warm_pool or [])
        self.active_reservations   = {}
        self.calls                 = []
        self._cr_seq               = 0

    def names(self):
        return [c[0] for c in self.calls]

    def count(self, name):
        return self.names().count(name)

    def suspend_processes(self, group_name, processes):
        self.calls.append(("suspend_processes", group_name, list(processes)))
        if self.fail_suspend:
            raise client_error("ResourceContention", "SuspendProcesses")

    def resume_processes(self, group_name, processes):
        self.calls.append(("resume_processes", group_name, list(processes)))
        if self.fail_resume:
            raise client_error("ResourceContention", "ResumeProcesses")

    def get_launch_template_instance_type(self, launch_template_ref):
        self.calls.append(("get_launch_template_instance_type", launch_template_ref))
        if self.fail_describe_lt:
            raise client_error("InvalidLaunchTemplateId.NotFound", "DescribeLaunchTemplateVersions")
        return self.versions.get(launch_template_ref.version)

    def create_launch_template_version(self, launch_template_ref, instance_type, description):
        self.calls.append(("create_launch_template_version", launch_template_ref, instance_type, description))
        if self.fail_create_version:
            raise client_error("InvalidLaunchTemplateId.VersionNotFound", "CreateLaunchTemplateVersion")
        version = str(max(int(v) for v in self.versions) + 1)
        self.versions[version] = instance_type
        return version

    def set_default_launch_template_version(self, launch_template_id, version):
        self.calls.append(("set_default_launch_template_version", launch_template_id, version))
        if self.fail_set_default:
            raise client_error("UnauthorizedOperation", "ModifyLaunchTemplate")
        self.default_version = version

    def get_warm_pool_instances(self, group_name, max_records=None):
        self.calls.append(("get_warm_pool_instances", group_name))
        if self.fail_warm_pool:
            raise client_error("ValidationError", "DescribeWarmPool")
        return list(self.warm_pool)

    def modify_instance_type(self, instance_id, instance_type):
        self.calls.append(("modify_instance_type", instance_id, instance_type))
        if instance_id in self.modify_failures:
            raise client_error("IncorrectInstanceState", "ModifyInstanceAttribute")
        self.warm_pool = [i._replace(instance_type=instance_type) if i.id == instance_id else i for i in self.warm_pool]

    def create_capacity_reservation(self, instance_type, availability_zone, platform, tenancy="default",
            end_date_type="unlimited", instance_match_criteria="targeted", tags=None):
        self.calls.append(("create_capacity_reservation", instance_type, availability_zone, platform, tags))
        if instance_type not in self.capacity:
            raise client_error("InsufficientInstanceCapacity", "CreateCapacityReservation")
        self._cr_seq += 1
        reservation_id = "cr-%017d" % self._cr_seq
        self.active_reservations[reservation_id] = instance_type
        return reservation_id

    def cancel_capacity_reservation(self, capacity_reservation_id):
        instance_type = self.active_reservations.get(capacity_reservation_id)
        self.calls.append(("cancel_capacity_reservation", capacity_reservation_id, instance_type))
        if instance_type in self.cancel_failures:
            raise client_error("InternalError", "CancelCapacityReservation")
        if instance_type in self.cancel_not_acked:
            return False
        del self.active_reservations[capacity_reservation_id]
        return True


class RecordingAlerting:
    def __init__(self, context, destination, environment):
        self.context     = context
        self.destination = destination
        self.environment = environment
        self.messages    = []

    def subject(self, group_name):
        return "-- ICE Alert: %s  --" % group_name

    def notify(self, subject, message):
        self.messages.append((subject, message))
        return True


@pytest.fixture(autouse=True)
def configuration():
    Cfg.init({})
    yield


@pytest.fixture
def set_config():
    def _set(values):
        Cfg.register(values, layer="Test overrides", create_layer_when_needed=True, ignore_double_definition=True)
    return _set


@pytest.fixture
def alerting_recorder():
    created = []
    def _factory(context, destination, environment):
        a = RecordingAlerting(context, destination, environment)
        created.append(a)
        return a
    _factory.created = created
    return _factory


@pytest.fixture
def warm_pool():
    return [
        WarmPoolInstance("i-0000000000000001a", "Warmed:Stopped", "m5.large"),
        WarmPoolInstance("i-0000000000000002b", "Warmed:Running", "m5.large"),
        WarmPoolInstance("i-0000000000000003c", "Warmed:Stopped", "m5.large"),
    ]


_ICE_EVENT = {
    "originalEvent": {
        "version": "0",
        "id": "6f1f1a46-0c6e-4c0c-9b3f-0d2c8a1b9e11",
        "detail-type": "AWS API Call via CloudTrail",
        "source": "aws.ec2",
        "account": "123456789012",
        "time": "2026-10-19T08:00:00Z",
        "region": "us-east-1",
        "resources": [],
        "detail": {
            "eventName": "RunInstances",
            "errorCode": "Server.InsufficientInstanceCapacity",
            "errorMessage": "We currently do not have sufficient m5.large capacity in the Availability Zone you requested (us-east-1a).",
            "recipientAccountId": "123456789012",
            "requestParameters": {
                "availabilityZone": "us-east-1a",
                "launchTemplate": {
                    "launchTemplateId": "lt-0123456789abcdef0",
                    "version": "1"
                },
                "tagSpecificationSet": {
                    "items": [{
                        "resourceType": "instance",
                        "tags": [
                            {"key": "Name", "value": "g1-node"},
                            {"key": "aws:autoscaling:groupName", "value": "g1"},
                            {"key": "t_env", "value": "lab"}
                        ]
                    }]
                }
            }
        }
    },
    "mixedTypes": ["m5.large", "m5.xlarge"],
    "slackChannel": "#ice-alerts"
}


@pytest.fixture
def ice_event_dict():
    return copy.deepcopy(_ICE_EVENT)
