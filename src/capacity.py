""" capacity.py

Probe zonal capacity of instance types with short-lived On-Demand Capacity Reservations (ODCR).

For each candidate type (in priority order), a 1-instance reservation is created in the target AZ and cancelled
immediately. A type is reported available only when both calls succeed. EC2 refuses the reservation when the AZ
lacks capacity for the type, so the probe tests real capacity without launching anything.

Failure policy:
    * Reservation creation fails: expected (ICE), the next candidate is tried.
    * Reservation cancellation fails: a reservation may be left behind. Probing stops and NotFound is returned;
      the type is never reported as available and no other reservation is created.
"""
from collections import namedtuple

import misc
import config as Cfg

from aws_xray_sdk.core import xray_recorder

import icelog
log = icelog.logger(__name__)

ProbeResult = namedtuple("ProbeResult", ["found", "instance_type"])

def Found(instance_type):
    return ProbeResult(True, instance_type)

NotFound = ProbeResult(False, None)


class CapacityProber:
    def __init__(self, context, fleet):
        self.context = context
        self.fleet   = fleet
        Cfg.register({
                 "capacity.probe.instance_platform,Stable" : {
                     "DefaultValue": "Windows",
                     "Format"      : "String",
                     "Description" : """Platform of the probing capacity reservations (ex: 'Linux/UNIX', 'Windows')."""
                 },
                 "capacity.probe.tenancy" : "default",
                 "capacity.probe.end_date_type" : "unlimited",
                 "capacity.probe.instance_match_criteria" : "targeted",
                 "capacity.probe.tag,Stable" : {
                     "DefaultValue": "created-by=ice-failover",
                     "Format"      : "MetaString",
                     "Description" : """Tags set on probing capacity reservations (format 'key=value,key2=value2'; use '\\,' and '\\=' to escape separators in values).

These tags help to track down reservations left behind after a failed cancellation.
                     """
                 }
        }, ignore_double_definition=True)

    def _reservation_tags(self):
        tags = {}
        for d in misc.parse_line_as_list_of_dict(Cfg.get("capacity.probe.tag"), with_leading_string=False, default=[]):
            tags.update({k: v for k, v in d.items() if v is not True})
        return tags

    @xray_recorder.capture(name="CapacityProber.probe")
    def probe(self, candidate_types, availability_zone):
        """ Return Found(<type>) for the first candidate with capacity in 'availability_zone', NotFound otherwise.
        """
        probed = []
        for instance_type in candidate_types:
            if instance_type in probed:
                log.debug("Instance type '%s' already probed. Skipping duplicate." % instance_type)
                continue
            probed.append(instance_type)

            try:
                reservation_id = self.fleet.create_capacity_reservation(instance_type, availability_zone,
                        Cfg.get("capacity.probe.instance_platform"),
                        tenancy=Cfg.get("capacity.probe.tenancy"),
                        end_date_type=Cfg.get("capacity.probe.end_date_type"),
                        instance_match_criteria=Cfg.get("capacity.probe.instance_match_criteria"),
                        tags=self._reservation_tags())
            except Exception as e:
                log.info("Error creating ODCR for type %s in %s : %s" % (instance_type, availability_zone, e))
                continue
            log.info("Successfully created ODCR '%s' for type: %s" % (reservation_id, instance_type))

            if self._release(reservation_id, instance_type):
                log.log(log.NOTICE, "Capacity available for '%s' in %s." % (instance_type, availability_zone))
                return Found(instance_type)

            log.error("Capacity reservation '%s' for type %s may still be active! Stop probing without selecting a type."
                    % (reservation_id, instance_type))
            return NotFound

        log.log(log.NOTICE, "No capacity found in %s for any of %s." % (availability_zone, list(candidate_types)))
        return NotFound

    def _release(self, reservation_id, instance_type):
        if reservation_id is None:
            log.error("No capacity reservation id returned for type %s! Can't cancel it." % instance_type)
            return False
        try:
            if not self.fleet.cancel_capacity_reservation(reservation_id):
                log.error("EC2 did not acknowledge the cancellation of ODCR '%s' (type %s)." % (reservation_id, instance_type))
                return False
        except Exception as e:
            log.exception("Error cancelling ODCR '%s' for type %s : %s" % (reservation_id, instance_type, e))
            return False
        log.info("Successfully cancelled ODCR '%s' for type: %s" % (reservation_id, instance_type))
        return True
