import os
import re
from datetime import datetime
from datetime import timezone
from collections import defaultdict

import boto3
from botocore.config import Config
import requests
from requests_file import FileAdapter

from aws_xray_sdk import global_sdk_config
global_sdk_config.set_sdk_enabled("AWS_XRAY_SDK_ENABLED" in os.environ and os.environ["AWS_XRAY_SDK_ENABLED"] in ["1", "True", "true"])
from aws_xray_sdk.core import patch_all
patch_all()


def is_sam_local():
    return "AWS_SAM_LOCAL" in os.environ and os.environ["AWS_SAM_LOCAL"] == "true"

import icelog
log = icelog.logger(__name__)


def utc_now():
    return datetime.now(tz=timezone.utc)


def Session():
    s = requests.Session()
    s.mount('file://', FileAdapter())
    return s

def get_url(url, throw_exception_on_warning=False):
    """ Fetch the content of an URL.

    Supported schemes:
        * internal:<filename>: A file shipped along the Lambda code (or in a Lambda layer under /opt),
        * s3://<bucket>/<key>,
        * file://, http:// and https://.

    Returns bytes or None on failure.
    """
    def _warning(msg):
        if throw_exception_on_warning:
            raise Exception(msg)
        else:
            log.warning(msg)

    if url is None or url == "":
        return None

    # internal: protocol management
    internal_str = "internal:"
    if url.startswith(internal_str):
        filename = url[len(internal_str):]
        paths = [os.getcwd(), "/opt" ]
        if "LAMBDA_TASK_ROOT" in os.environ:
            paths.insert(0, os.environ["LAMBDA_TASK_ROOT"])
        if "ICEFAILOVER_DIR" in os.environ:
            paths.append(os.environ["ICEFAILOVER_DIR"])
            paths.append("%s/src/resources/" % os.environ["ICEFAILOVER_DIR"])
        for path in paths:
            for sub_path in [".", "custo", "resources" ]:
                try:
                    f = open("%s/%s/%s" % (path, sub_path, filename), "rb")
                except OSError:
                    continue
                with f:
                    return f.read()
        _warning("Fail to read internal url '%s'!" % url)
        return None

    # s3:// protocol management
    if url.startswith("s3://"):
        m = re.search(r"^s3://([-.\w]+)/(.*)", url)
        if m is None:
            _warning("Malformed S3 url '%s'!" % url)
            return None
        bucket, key = [m.group(1), m.group(2)]
        key         = "/".join([p for p in key.split("/") if p != ""])
        client = boto3.client("s3")
        try:
            response = client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except Exception as e:
            _warning("Failed to fetch S3 url '%s' : %s" % (url, e))
            return None

    # <other>:// protocols management
    s = Session()
    try:
        response = s.get(url)
        response.raise_for_status()
    except Exception as e:
        _warning("Failed to fetch url '%s' : %s" % (url, e))
        return None
    return response.content

def parse_line_as_list_of_dict(string, with_leading_string=True, leading_keyname="_", default=None):
    """ Parse a meta-string like 'key1,flag,opt=value;key2' into a list of dicts.
    """
    if string is None:
        return default
    def _remove_escapes(s):
        return s.replace("\\;", ";").replace("\\,", ",").replace("\\=", "=")
    try:
        l = []
        for d in re.split("(?<!\\\\);", string):
            if d == "": continue

            dct       = defaultdict(str)
            el        = re.split("(?<!\\\\),", d)
            idx_start = 0
            if with_leading_string:
                key = el[0]
                if key == "": continue
                dct[leading_keyname] = _remove_escapes(key)
                idx_start = 1
            for item in el[idx_start:]:
                i_el = re.split("(?<!\\\\)=", item, maxsplit=1)
                dct[i_el[0]] = _remove_escapes(i_el[1]) if len(i_el) > 1 else True
            l.append(dct)
        return l
    except Exception:
        return default

def initialize_clients(clients, ctx, region_name=None):
    """ Create the boto3 clients once and cache them in the context as '<service>.client'.
    """
    config = Config(
       retries = {
       'max_attempts': 5,
       'mode': 'standard'
       })
    for c in clients:
        k = "%s.client" % c
        if k not in ctx:
            log.debug("Initialize client '%s' (region=%s)." % (c, region_name))
            ctx[k] = boto3.client(c, config=config, region_name=region_name)
