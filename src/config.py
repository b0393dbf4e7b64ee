import re
import yaml

import misc
import debug as Dbg

import icelog
log = icelog.logger(__name__)

_init = None

from aws_xray_sdk.core import xray_recorder

@xray_recorder.capture(name="config.init")
def init(context, with_predefined_configuration=True):
    """ (Re)Initialize the configuration stack for a new invocation.

    Layers are evaluated from the last to the first one:
        * Built-in defaults (registered with register()),
        * YAML files ('internal:custom.config.yaml', then 'config.loaded_files' and 'ConfigurationURLs'),
        * Dynamic layers created with register(..., create_layer_when_needed=True).
    """
    global _init
    _init                = {}
    _init["context"]     = context
    _init["all_configs"] = [{
        "source": "Built-in defaults",
        "config": {},
        "metas" : {}
        }]
    _init["dynamic_config"]       = []
    _init["loaded_files"]         = []
    _init["active_parameter_set"] = None
    register({
             "config.dump_configuration,Stable" : {
                 "DefaultValue": "0",
                 "Format"      : "Bool",
                 "Description" : """Display all relevant configuration parameters in CloudWatch logs.

    Used for debugging purpose.
                 """
             },
             "config.loaded_files,Stable" : {
                 "DefaultValue" : "",
                 "Format"       : "StringList",
                 "Description"  : """A semi-column separated list of URL to load as configuration.

Upon startup, the YAML files are loaded in sequence and stacked allowing override between layers. The file
'internal:custom.config.yaml' is always loaded first: users that intend to embed customization directly inside
the Lambda delivery should override this file.

This key is evaluated again after each URL parsing meaning that a layer can redefine the 'config.loaded_files' to load further
YAML files.
                 """
             },
             "config.max_file_hierarchy_depth" : 10,
             "config.active_parameter_set,Stable": {
                 "DefaultValue": "",
                 "Format"      : "String",
                 "Description" : """Defines the parameter set to activate.

A parameter set is a YAML dict, inside a configuration file, whose keys override the keys of the same layer when
the parameter set is active.
                 """
             },
             "config.ignored_warning_keys,Stable" : {
                 "DefaultValue": "",
                 "Format"      : "StringList",
                 "Description" : """A list of regex matching config keys that must not generate a warning on usage.
                 """
             }
    })

    # Load extra configuration from specified URLs
    xray_recorder.begin_subsegment("config.init:load_files")
    files_to_load = ["internal:custom.config.yaml"]
    if with_predefined_configuration:
        files_to_load.extend(get_list("config.loaded_files", default=[]))
    if "ConfigurationURLs" in context and context["ConfigurationURLs"]:
        files_to_load.extend(context["ConfigurationURLs"].split(";"))
    if misc.is_sam_local():
        # For debugging purpose. Ability to override config when in SAM local
        resource_file = "internal:sam.local.config.yaml"
        log.info("Reading local resource file %s..." % resource_file)
        files_to_load.append(resource_file)

    loaded_files = []
    i = 0
    while i < len(files_to_load):
        f = files_to_load[i]
        i += 1
        if f == "":
            continue

        fd = None
        c  = None
        try:
            fd = misc.get_url(f, throw_exception_on_warning=True)
            c  = yaml.safe_load(fd)
            if c is None: c = {} # Empty YAML file
            if not isinstance(c, dict):
                raise Exception("Configuration file must contain a YAML dict!")
            loaded_files.append({
                    "source": f,
                    "config": c
                })
            if "config.loaded_files" in c and c["config.loaded_files"] != "":
                files_to_load.extend(c["config.loaded_files"].split(";"))
            if i > get_int("config.max_file_hierarchy_depth"):
                log.warning("Too much config file loads (%s)!! Stopping here!" % [x["source"] for x in loaded_files])
                break
        except Exception as e:
            if fd  is None:
                log.log(log.NOTICE, "Failed to load config file '%s'! %s (Notice: It will be safely ignored!)" % (f, e))
            elif c is None:
                log.warning("Failed to parse config file '%s'! %s (Notice: It will be safely ignored!)" % (f, e))
            else:
                log.exception("Failed to process config file '%s'! (Notice: It will be safely ignored!)" % f)
    _init["loaded_files"] = loaded_files
    _build_layers()
    xray_recorder.end_subsegment()

    _init["ignored_warning_keys"] = get_list("config.ignored_warning_keys", default=[])


def _parameterset_sanity_check():
    # Warn user if parameter set is not found
    active_parameter_set = _init["active_parameter_set"]
    if active_parameter_set is not None and active_parameter_set != "":
        found = False
        for cfg in _get_config_layers(reverse=True):
            c = cfg["config"]
            if active_parameter_set in c:
                found = True
                break
        if not found:
            log.warning("Active parameter set is '%s' but no parameter set with this name exists!" % active_parameter_set)

def register(config, ignore_double_definition=False, layer="Built-in defaults", create_layer_when_needed=False):
    """ Register configuration keys in a layer.

    Built-in keys can carry metadata in their name (ex: 'app.disable,Stable') and a dict value with
    'DefaultValue', 'Format' and 'Description' entries.
    """
    if _init is None:
        return
    layer_struct = next(filter(lambda l: l["source"] == layer, _init["all_configs"] + _init["dynamic_config"]), None)
    if layer_struct is None:
        if not create_layer_when_needed:
            raise Exception(f"Unknown config '{layer}'!")
        layer_struct     = {"source": layer, "config": {}, "metas": {}}
        _init["dynamic_config"].append(layer_struct)
    layer_config = layer_struct["config"]
    layer_metas  = layer_struct["metas"]
    for c in config:
        p = misc.parse_line_as_list_of_dict(c)
        key = p[0]["_"]
        if not ignore_double_definition and key in layer_config:
            raise Exception("Double definition of key '%s'!" % key)
        layer_config[key] = config[c]
        layer_metas[key]  = dict(p[0])
    _build_layers()

def _build_layers():
    # Build the config layer stack
    layers = []
    layers.extend(_init["all_configs"])
    layers.extend(_init["loaded_files"])
    layers.extend(_init["dynamic_config"])
    _init["config_layers"] = layers

    # Update config.active_parameter_set
    builtin_config = _init["all_configs"][0]["config"]
    for cfg in _get_config_layers(reverse=True):
        c = cfg["config"]
        if "config.active_parameter_set" in c:
            v = c["config.active_parameter_set"]
            if c is builtin_config and isinstance(v, dict):
                v = v["DefaultValue"]
            _init["active_parameter_set"] = v if v != "" else None
            break
    _parameterset_sanity_check()
    # Create a lookup efficient key cache
    compile_keys()


def _get_config_layers(reverse=False):
    if not reverse:
        return _init["config_layers"]
    l = _init["config_layers"].copy()
    l.reverse()
    return l

def _k(key):
    return key.replace("override:", "")

def is_stable_key(key):
    metas = _init["all_configs"][0]["metas"]
    return _k(key) in metas and "Stable" in metas[_k(key)] and metas[_k(key)]["Stable"]

def keys(prefix=None, only_stable_keys=False):
    k             = []
    config_layers = _get_config_layers()
    for config_layer in config_layers:
        c = config_layer["config"]
        for key in c:
            if key.startswith("#"): continue # Ignore commented keys
            if key.startswith("["): continue # Ignore parameterset keys
            if only_stable_keys and not is_stable_key(key):
                continue
            if prefix is not None and not _k(key).startswith(prefix): continue
            if isinstance(c[key], list):
                continue # Ignore list() as it is erroneous
            if c is not config_layers[0]["config"] and isinstance(c[key], dict):
                continue # Parameter sets. On the Builtin layer, we accept dict that contains metas
            if _k(key) not in k:
                k.append(_k(key))
    return k

def dumps(only_stable_keys=True):
    c = {}
    for k in keys(only_stable_keys=only_stable_keys):
        c[k] = get_extended(k).copy()
        del c[k]["Success"]
    return c

def dump():
    builtin_layer = _init["all_configs"][0]
    r             = dumps(only_stable_keys=False)
    keys          = {}
    for k in r:
        key_info = r[k]
        if key_info["Stable"]:
            keys[k] = key_info
            continue

        if "WARNING" in key_info["Status"]:
            pattern_match = False
            for pattern in _init["ignored_warning_keys"]:
                if re.match(pattern, k):
                    pattern_match = True
            if not pattern_match:
                log.warning(key_info["Status"])

        if k in builtin_layer["config"] and key_info["ConfigurationOrigin"] != builtin_layer["source"]:
            log.warning("Non STABLE key '%s' defined in '%s'! Its semantic and/or existence MAY change in future releases!!"
                % (k, key_info["ConfigurationOrigin"]))
            keys[k] = key_info

    if get_int("config.dump_configuration"):
        log.info(Dbg.pprint(keys))
        log.info("Loaded files: %s " % [ x["source"] for x in _init["loaded_files"]])

def _lookup(c, key, builtin_layer, key_def):
    if key not in c or isinstance(c[key], list):
        return None
    if c is not builtin_layer and isinstance(c[key], dict):
        return None
    if c is builtin_layer and key_def is not None:
        return key_def["DefaultValue"]
    return c[key]

def compile_keys():
    """ Build a dictionary to quickly lookup keys.

    Note: This function searches 'override:{key}' before '{key}' names.
    """
    active_parameter_set   = _init["active_parameter_set"]
    builtin_layer          = _init["all_configs"][0]["config"]
    _init["compiled_keys"] = {}

    for key in keys(only_stable_keys=False):
        stable_key = is_stable_key(key)
        key_def    = None
        if key in builtin_layer and isinstance(builtin_layer[key], dict):
            key_def = builtin_layer[key]

        r = _unknown_key(key)
        r["Stable"] = stable_key

        # Perform 2 iterations: once to detect if there is an override and finally normal key lookup
        for key_pattern in [f"override:{key}", key]:
            for config in _get_config_layers(reverse=True):
                c = config["config"]

                candidates = []
                if not key_pattern.startswith("override:") and active_parameter_set is not None and isinstance(c.get(active_parameter_set), dict):
                    candidates.append((c[active_parameter_set], active_parameter_set))
                candidates.append((c, None))

                for layer, parameter_set in candidates:
                    value = _lookup(layer, key_pattern, builtin_layer, key_def)
                    if value is None:
                        continue
                    pset_txt = " (ParameterSet='%s')" % parameter_set if parameter_set is not None else ""
                    r = {
                        "Key": key,
                        "Success": True,
                        "Value": value,
                        "ConfigurationOrigin" : config["source"],
                        "Status": "Key found in '%s'%s" % (config["source"], pset_txt),
                        "Stable": stable_key,
                        "Override": key_pattern.startswith("override:")
                    }
                    if key_def is not None:
                        for k in ["Format", "Description"]:
                            if k in key_def: r[k] = key_def[k]
                    if key not in builtin_layer:
                        r["Status"] = "[WARNING] Key '%s' doesn't exist as built-in default (Misconfiguration??) but %s!" % (key, r["Status"])
                    break
                if r["Success"]:
                    break
            if r["Success"]:
                break
        _init["compiled_keys"][key] = r

def _unknown_key(key):
    return {
        "Key": key,
        "Value" : None,
        "Success" : False,
        "ConfigurationOrigin": "None",
        "Status": "[WARNING] Unknown configuration key '%s'" % key,
        "Stable": False,
        "Override": False
    }

def get_extended(key, fmt=None):
    if _init is not None and key in _init["compiled_keys"]:
        r = dict(_init["compiled_keys"][key])
    else:
        r = _unknown_key(key)
    if fmt and isinstance(r["Value"], str):
        r["Value"] = r["Value"].format(**fmt)
    return r

def get(key, cls=str, none_on_failure=False, fmt=None):
    r = get_extended(key, fmt=fmt)
    if not r["Success"]:
        if none_on_failure:
            return None
        else:
            raise Exception(r["Status"])
    try:
        if cls == str:
            return str(r["Value"]) if r["Value"] is not None else None
        if cls == int:
            return int(r["Value"])
        if cls == float:
            return float(r["Value"])
    except Exception as e:
        if none_on_failure:
            return None
        raise Exception(f"Failed to convert key '{key}' with value '%s' : {e}" % r["Value"])

def get_int(key, fmt=None):
    return get(key, cls=int, fmt=fmt)

def get_list(key, separator=";", default=None, fmt=None):
    v = get(key, fmt=fmt)
    if v is None or v == "": return default
    return [i.strip() for i in v.split(separator) if i.strip() != ""]

