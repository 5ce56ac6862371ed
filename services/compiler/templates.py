"""Jinja2 template for generated workflow modules and the simulated runtime they embed."""

from jinja2 import BaseLoader
from jinja2.sandbox import SandboxedEnvironment

# Inserted verbatim into every generated module; never parsed by Jinja.
RUNTIME_SOURCE = r'''
SAFE_BUILTINS = {
    "abs": abs, "all": all, "any": any, "bool": bool, "dict": dict, "float": float,
    "int": int, "len": len, "list": list, "max": max, "min": min, "round": round,
    "sorted": sorted, "str": str, "sum": sum, "tuple": tuple, "True": True,
    "False": False, "None": None,
}

WORD_BYTES = 32


class Secret(object):
    """Secret value that never prints its contents"""

    def __init__(self, name, value):
        self.name = name
        self._value = value

    def reveal(self):
        return self._value

    def __repr__(self):
        return "Secret(%r, '***')" % self.name

    __str__ = __repr__


class SimulationRuntime(object):
    """Simulated chain and network backend; nothing leaves this process"""

    def __init__(self, pipeline_id):
        self.pipeline_id = pipeline_id

    def log(self, message):
        print("[USER LOG] %s" % (message,), flush=True)

    def sim(self, message):
        print("[SIMULATION] %s" % (message,), flush=True)

    def _digest(self, *parts):
        raw = json.dumps([self.pipeline_id] + [repr(p) for p in parts], sort_keys=True)
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def _chain_name(self, chain):
        if isinstance(chain, dict):
            return chain.get("name")
        return chain

    # Triggers

    def fire(self, trigger):
        kind = trigger["kind"]
        config = trigger["config"]
        if kind == "http-trigger":
            return dict(config.get("sample_payload") or {})
        if kind == "cron-trigger":
            return {"schedule": config.get("schedule"), "timezone": config.get("timezone"), "scheduled_at": 0}
        if kind == "evm-log-trigger":
            return {
                "event": config.get("event_signature"),
                "block_number": 1,
                "tx_hash": "0x" + self._digest(trigger["node"], "log"),
                "topics": [],
            }
        raise ValueError("unknown trigger kind: %s" % kind)

    # Secrets

    def get_secret(self, name):
        value = os.environ.get(name)
        if value is None:
            self.sim("secret %s is not available" % name)
            return None
        return Secret(name, value)

    def signer(self, node_id, env_var_name):
        secret = self.get_secret(env_var_name)
        if secret is None:
            return None
        return {"node": node_id, "address": "0x" + self._digest(node_id, secret.reveal())[:40]}

    # Capabilities

    def http_fetch(self, node_id, url, method="GET", headers=None, body=None, timeout=30,
                   mock_response=None, auth=None, data=None):
        self.sim("%s %s %s (timeout %ss)" % (node_id, method, url, timeout))
        if mock_response is not None:
            return mock_response
        digest = self._digest(node_id, url, method, body, data)
        return {"status": 200, "url": url, "value": int(digest[:8], 16) % 100000 / 100.0}

    def evm_read(self, node_id, chain=None, contract=None, function=None, args=None, data=None):
        digest = self._digest(node_id, chain, contract, function, args, data)
        return {
            "chain": self._chain_name(chain),
            "contract": contract,
            "function": function,
            "result": int(digest[:12], 16),
        }

    def evm_write(self, node_id, chain=None, contract=None, gas_limit=None, data=None, value=None,
                  signer=None, payload=None):
        tx_hash = "0x" + self._digest(node_id, chain, contract, data, value, payload)
        sender = signer["address"] if signer else ZERO_ADDRESS
        self.sim("%s write to %s on %s from %s (gas limit %s) tx %s" % (
            node_id, contract, self._chain_name(chain), sender, gas_limit, tx_hash))
        return {"tx_hash": tx_hash, "status": "simulated", "gas_limit": gas_limit}

    # Bindings

    def bind_contract(self, node_id, address, chain=None):
        return address

    def select_chain(self, node_id, name, is_testnet=True, rpc_url=None):
        return {"name": name, "is_testnet": is_testnet, "rpc_url": rpc_url}

    # Logic

    def evaluate(self, expression, data):
        return eval(expression, {"__builtins__": SAFE_BUILTINS}, {"data": data})

    def aggregate(self, method, values):
        if not isinstance(values, (list, tuple)):
            values = [values]
        if not values:
            return None
        if method == "median":
            return statistics.median(values)
        if method == "mean":
            return statistics.mean(values)
        if method == "mode":
            counts = {}
            for v in values:
                counts[v] = counts.get(v, 0) + 1
            best = max(counts.values())
            return sorted(v for v, c in counts.items() if c == best)[0]
        raise ValueError("unknown aggregation method: %s" % method)

    def run_in_node_mode(self, node_id, method, data, nodes=4):
        observations = [data] * nodes
        result = self.aggregate(method, observations)
        self.sim("%s %s of %d node observations: %r" % (node_id, method, nodes, result))
        return result

    def abi_encode(self, types, values):
        types = types.split(",")
        if not isinstance(values, (list, tuple)):
            values = [values]
        if len(types) != len(values):
            raise ValueError("abi_encode expects %d values, got %d" % (len(types), len(values)))
        words = []
        for abi_type, value in zip(types, values):
            if abi_type == "bool":
                word = (1 if value else 0).to_bytes(WORD_BYTES, "big")
            elif abi_type == "address":
                word = int(value, 16).to_bytes(WORD_BYTES, "big")
            elif abi_type.startswith("bytes"):
                raw = bytes.fromhex(value[2:] if value.startswith("0x") else value)
                word = raw.ljust(WORD_BYTES, b"\0")
            else:
                word = (int(value) % (1 << 256)).to_bytes(WORD_BYTES, "big")
            words.append(word)
        return "0x" + b"".join(words).hex()

    def abi_decode(self, types, data):
        if not isinstance(data, str):
            raise ValueError("abi_decode expects a hex string")
        raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
        values = []
        for i, abi_type in enumerate(types.split(",")):
            word = raw[i * WORD_BYTES:(i + 1) * WORD_BYTES]
            if len(word) != WORD_BYTES:
                raise ValueError("abi_decode: data too short for %s" % types)
            number = int.from_bytes(word, "big")
            if abi_type == "bool":
                values.append(number != 0)
            elif abi_type == "address":
                values.append("0x" + word[-20:].hex())
            elif abi_type.startswith("bytes"):
                values.append("0x" + word[:int(abi_type[5:])].hex())
            elif abi_type.startswith("int") and number >= 1 << 255:
                values.append(number - (1 << 256))
            else:
                values.append(number)
        return values
'''.strip("\n")

MODULE_TEMPLATE = '''\
"""Generated workflow module.

Runs every trigger once against a simulated chain runtime.
"""

import hashlib
import json
import os
import statistics
import sys

# pipeline {{ pipeline_id }} version {{ pipeline_version }}
PIPELINE_ID = {{ pipeline_id }}
PIPELINE_VERSION = {{ pipeline_version }}
ZERO_ADDRESS = {{ zero_address }}


{{ runtime }}
{% for handler in handlers %}


def {{ handler.name }}(rt, payload):
{% for line in handler.lines %}
    {{ line }}
{% endfor %}
    return "complete"
{% endfor %}


TRIGGERS = [
{% for handler in handlers %}
    {"node": {{ handler.node }}, "kind": {{ handler.kind }}, "config": {{ handler.config }}, "handler": {{ handler.name }}},
{% endfor %}
]


def main():
    rt = SimulationRuntime(PIPELINE_ID)
    for trigger in TRIGGERS:
        payload = rt.fire(trigger)
        trigger["handler"](rt, payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
'''

_env = SandboxedEnvironment(
    loader=BaseLoader(),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)
module_template = _env.from_string(MODULE_TEMPLATE)
