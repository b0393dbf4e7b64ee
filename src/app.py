import os
import sys
import json

import misc
import config
import iceevent
import fleet
import alerting
import orchestrator
import debug as Dbg
import config as Cfg

from aws_xray_sdk.core import xray_recorder

import icelog
log = icelog.logger(__name__)
log.debug("App started.")

# Import environment variables
ctx = {"now": misc.utc_now()}
for env in os.environ:
    ctx[env] = os.getenv(env)

log.debug("End of preambule.")

@xray_recorder.capture(name="app.init")
def init(ice_event):
    config.init(ctx)
    Cfg.register({
           "app.disable,Stable": {
                "DefaultValue": 0,
                "Format": "Bool",
                "Description": """Flag to disable the ICE failover Lambda function.

While disabled, the function acknowledges ICE events without suspending, probing or changing anything."""
               },
           "app.obfuscate_event_dump": "1"
        })

    ctx["Region"]    = ice_event.region
    ctx["AccountId"] = ice_event.account_id
    # Clients are bound to the region of the event
    for c in ["ec2", "autoscaling", "sns"]:
        client = ctx.get("%s.client" % c)
        if client is not None and client.meta.region_name != ice_event.region:
            del ctx["%s.client" % c]
    misc.initialize_clients(["ec2", "autoscaling", "sns"], ctx, region_name=ice_event.region)

    log.debug("Setup management objects.")
    ctx["o_fleet"]        = fleet.FleetClient(ctx)
    ctx["o_orchestrator"] = orchestrator.Orchestrator(ctx, ctx["o_fleet"])
    # Alerting managers are built per event; their keys must be known before the configuration dump
    alerting.register_config()


@xray_recorder.capture()
def ice_handler(event, context):
    """

    Parameters
    ----------
    event: dict, required
        ICE event (CloudTrail 'RunInstances' failure enriched with 'mixedTypes' and 'slackChannel').

    context: object, required
        Lambda Context runtime methods and attributes

        Context doc: https://docs.aws.amazon.com/lambda/latest/dg/python-context-object.html

    Returns
    ------
        dict with 'statusCode' and 'body'.
    """
    ctx["now"]          = misc.utc_now()
    ctx["FunctionName"] = "ICE"
    log.log(log.NOTICE, "Handler start.")

    ice_event = iceevent.parse(event)
    init(ice_event)
    if Cfg.get_int("app.obfuscate_event_dump"):
        log.debug(Dbg.obfuscate(event))
    else:
        log.debug(Dbg.pprint(event))

    Cfg.dump()

    if Cfg.get_int("app.disable") != 0:
        log.warning("Application disabled due to 'app.disable' key")
        return {
            "statusCode": 200,
            "body": json.dumps({
                "message": "ICE failover disabled. Event ignored."
            })
        }

    r = ctx["o_orchestrator"].run(ice_event)
    log.log(log.NOTICE, "Normal end.")
    return r


if __name__ == '__main__':
    # To ease debugging, the Lambda Python code can be started locally: python app.py ice_handler event.json
    if len(sys.argv) <= 2:
        print("Usage: %s <handler> <event.json>" % sys.argv[0])
        sys.exit(1)
    log.info("Looking for '%s' entrypoint..." % sys.argv[1])
    func = globals()[sys.argv[1]]
    with open(sys.argv[2]) as f:
        event = json.load(f)
    print(Dbg.pprint(func(event, None)))
