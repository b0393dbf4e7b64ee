# pylint:disable=redefined-outer-name

import json

import boto3
import pytest
from botocore.stub import ANY, Stubber

from alerting import AlertingMgr


@pytest.fixture
def sns():
    ctx  = {
        "Region": "us-east-1",
        "AccountId": "123456789012",
        "sns.client": boto3.client("sns", region_name="us-east-1"),
    }
    stub = Stubber(ctx["sns.client"])
    with stub:
        yield ctx, stub


@pytest.mark.parametrize("environment, topic", [
    ("lab", "arn:aws:sns:us-east-1:123456789012:platform-communications-us-east-1.fifo"),
    ("prod", "arn:aws:sns:us-east-1:123456789012:platform-communications-prod-us-east-1.fifo"),
    ("staging", "arn:aws:sns:us-east-1:123456789012:platform-communications-prod-us-east-1.fifo"),
])
def test_topic_routing(sns, environment, topic):
    ctx, _ = sns
    assert AlertingMgr(ctx, "#ice", environment).topic_arn() == topic


def test_lab_environments_configurable(sns, set_config):
    ctx, _ = sns
    a = AlertingMgr(ctx, "#ice", "dev")
    set_config({"alerting.lab_environments": "lab;dev"})
    assert a.topic_arn().endswith(":platform-communications-us-east-1.fifo")


def test_notify_publishes_payload(sns):
    ctx, stub = sns
    a = AlertingMgr(ctx, "#ice-alerts", "lab")
    stub.add_response("publish", {"MessageId": "5b5e2a3c-0000-0000-0000-000000000000"}, {
        "TopicArn": "arn:aws:sns:us-east-1:123456789012:platform-communications-us-east-1.fifo",
        "Message": ANY,
        "MessageGroupId": ANY
    })
    assert a.notify(a.subject("g1"), "m5.large in us-east-1a has insufficient capacity.") is True
    stub.assert_no_pending_responses()


def test_notify_payload_format(sns, monkeypatch):
    ctx, _ = sns
    published = []
    monkeypatch.setattr(ctx["sns.client"], "publish", lambda **kwargs: published.append(kwargs) or {"MessageId": "1"})
    a = AlertingMgr(ctx, "#ice-alerts", "lab")
    a.notify(a.subject("g1"), "hello")
    payload = json.loads(published[0]["Message"])
    assert payload == {"ImChannel": "#ice-alerts", "Subject": "-- ICE Alert: g1  --", "Message": "hello", "Version": 1}
    assert len(published[0]["MessageGroupId"]) == 36


def test_notify_failure_is_swallowed(sns):
    ctx, stub = sns
    a = AlertingMgr(ctx, "#ice", "prod")
    stub.add_client_error("publish", service_error_code="NotFound", service_message="Topic does not exist")
    assert a.notify("subject", "message") is False


def test_notify_disabled(sns, set_config):
    ctx, stub = sns
    a = AlertingMgr(ctx, "#ice", "prod")
    set_config({"alerting.disable": "1"})
    assert a.notify("subject", "message") is False
    stub.assert_no_pending_responses()
