import os
import logging
NOTICE = 25
logging.addLevelName(NOTICE,"NOTICE")


def logger(name):
    logger        = logging.getLogger(name)
    logger.NOTICE = NOTICE
    logger.DEBUG  = logging.DEBUG

    log_spec = None
    if "ICEFAILOVER_LOGLEVELS" in os.environ:
        log_spec = {}
        for spec in os.environ["ICEFAILOVER_LOGLEVELS"].split(","):
            if "=" not in spec:
                continue
            k, v = spec.split("=", 1)
            log_spec[k.strip()] = v.strip()
    is_sam_local = "AWS_SAM_LOCAL" in os.environ and os.environ["AWS_SAM_LOCAL"] == "true"

    log_level = logging.DEBUG if is_sam_local else logging.INFO
    if log_spec is not None and (name in log_spec or "*" in log_spec):
        module_log_spec = log_spec[name] if name in log_spec else log_spec["*"]
        level = getattr(logging, module_log_spec, None)
        if level is None:
            level = getattr(logger, module_log_spec, None)
        if not isinstance(level, int):
           logger.warning('Invalid log level: %s' % module_log_spec)
        else:
            log_level = level

    logger.setLevel(log_level)
    # Lambda runtime already attaches a handler to the root logger
    logger.propagate = "AWS_LAMBDA_FUNCTION_NAME" not in os.environ

    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setLevel(log_level)

        extra_logging = "%(asctime)s - " if is_sam_local else ""
        formatter = logging.Formatter("[%%(levelname)s] %s%%(filename)s:%%(lineno)d - %%(message)s" % extra_logging)
        ch.setFormatter(formatter)
        logger.addHandler(ch)
    return logger
