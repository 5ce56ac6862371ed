"""Pydantic schemas and port tables for every node kind."""

import ast
import re
from dataclasses import dataclass, field
from typing import Dict, Any, List, Literal, Optional, Type
from pydantic import BaseModel, Field, ValidationError, field_validator
from shared.constants import (
    FORBIDDEN_EXPRESSION_NAMES,
    MAX_EXPRESSION_LENGTH,
    TRIGGER_KINDS,
    EFFECT_KINDS,
)
from shared.types import NodeCategory, NodeState

ADDRESS_PATTERN = re.compile(r'^0x[0-9a-fA-F]{40}$')
ABI_TYPE_PATTERN = re.compile(r'^(u?int(8|16|32|64|128|256)?|address|bool|bytes(3[0-2]|[12][0-9]|[1-9]))$')


def check_address(v: Optional[str]) -> Optional[str]:
    if v is not None and not ADDRESS_PATTERN.match(v):
        raise ValueError("must be a 0x-prefixed 20-byte hex address")
    return v


def check_expression(v: str) -> str:
    """Expressions must parse and may not reach for introspection or I/O builtins"""
    if len(v) > MAX_EXPRESSION_LENGTH:
        raise ValueError(f"expression exceeds length limit: {len(v)} > {MAX_EXPRESSION_LENGTH}")
    try:
        tree = ast.parse(v, mode="eval")
    except SyntaxError as e:
        raise ValueError(f"expression is not valid: {e.msg}")
    for node in ast.walk(tree):
        name = None
        if isinstance(node, ast.Name):
            name = node.id
        elif isinstance(node, ast.Attribute):
            name = node.attr
        if name and (name in FORBIDDEN_EXPRESSION_NAMES or name.startswith("__")):
            raise ValueError(f"expression uses forbidden name '{name}'")
    return v


def check_abi_types(v: str) -> str:
    types = [t.strip() for t in v.split(",")]
    for t in types:
        if not ABI_TYPE_PATTERN.match(t):
            raise ValueError(f"unsupported ABI type '{t}'")
    return ",".join(types)


class CronTriggerConfig(BaseModel):
    """Config schema for cron-trigger"""
    schedule: str
    timezone: str = "UTC"

    @field_validator('schedule')
    @classmethod
    def validate_schedule(cls, v: str) -> str:
        if len(v.split()) not in (5, 6):
            raise ValueError("schedule must be a cron expression with 5 or 6 fields")
        return v

    class Config:
        extra = "forbid"


class HttpTriggerConfig(BaseModel):
    """Config schema for http-trigger"""
    method: Literal["GET", "POST", "PUT"] = "POST"
    sample_payload: Optional[Dict[str, Any]] = None
    authorized_keys: List[str] = Field(default_factory=list)

    class Config:
        extra = "forbid"


class EvmLogTriggerConfig(BaseModel):
    """Config schema for evm-log-trigger"""
    event_signature: str = "Transfer(address,address,uint256)"
    contract_address: Optional[str] = None
    chain_selector: Optional[str] = None

    @field_validator('contract_address')
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        return check_address(v)

    class Config:
        extra = "forbid"


class HttpFetchConfig(BaseModel):
    """Config schema for http-fetch"""
    url: str
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "GET"
    headers: Optional[Dict[str, str]] = None
    body: Optional[Any] = None
    timeout: int = Field(default=30, ge=1, le=300)
    mock_response: Optional[Any] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v

    class Config:
        extra = "forbid"


class EvmReadConfig(BaseModel):
    """Config schema for evm-read"""
    function_signature: str
    args: List[Any] = Field(default_factory=list)
    contract_address: Optional[str] = None
    chain_selector: Optional[str] = None

    @field_validator('contract_address')
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        return check_address(v)

    class Config:
        extra = "forbid"


class EvmWriteConfig(BaseModel):
    """Config schema for evm-write"""
    gas_limit: int = Field(default=1_000_000, ge=21_000, le=30_000_000)
    contract_address: Optional[str] = None
    chain_selector: Optional[str] = None

    @field_validator('contract_address')
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        return check_address(v)

    class Config:
        extra = "forbid"


class SecretsAccessConfig(BaseModel):
    """Config schema for secrets-access"""
    secret_name: str = Field(min_length=1, max_length=128)

    class Config:
        extra = "forbid"


class AggregationConfig(BaseModel):
    """Config schema for node-mode and consensus-aggregation"""
    aggregation_method: Literal["median", "mean", "mode"] = "median"

    class Config:
        extra = "forbid"


class DataTransformConfig(BaseModel):
    """Config schema for data-transform"""
    expression: str

    @field_validator('expression')
    @classmethod
    def validate_expression(cls, v: str) -> str:
        return check_expression(v)

    class Config:
        extra = "forbid"


class ConditionConfig(BaseModel):
    """Config schema for condition"""
    expression: str
    true_label: str = "true"
    false_label: str = "false"

    @field_validator('expression')
    @classmethod
    def validate_expression(cls, v: str) -> str:
        return check_expression(v)

    class Config:
        extra = "forbid"


class AbiEncodeConfig(BaseModel):
    """Config schema for abi-encode"""
    types: str
    values: List[Any] = Field(default_factory=list)

    @field_validator('types')
    @classmethod
    def validate_types(cls, v: str) -> str:
        return check_abi_types(v)

    class Config:
        extra = "forbid"


class AbiDecodeConfig(BaseModel):
    """Config schema for abi-decode"""
    types: str

    @field_validator('types')
    @classmethod
    def validate_types(cls, v: str) -> str:
        return check_abi_types(v)

    class Config:
        extra = "forbid"


class PriceFeedConsumerConfig(BaseModel):
    """Config schema for price-feed-consumer"""
    contract_address: str
    decimals: int = Field(default=8, ge=0, le=36)

    @field_validator('contract_address')
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        return check_address(v)

    class Config:
        extra = "forbid"


class ReceiverContractConfig(BaseModel):
    """Config schema for ireceiver-contract"""
    contract_address: str
    label: Optional[str] = None

    @field_validator('contract_address')
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        return check_address(v)

    class Config:
        extra = "forbid"


class ContractAddressConfig(BaseModel):
    """Config schema for contract-address"""
    address: str
    abi: Optional[List[Dict[str, Any]]] = None
    label: Optional[str] = None

    @field_validator('address')
    @classmethod
    def validate_address(cls, v: str) -> str:
        return check_address(v)

    class Config:
        extra = "forbid"


class ChainSelectorConfig(BaseModel):
    """Config schema for chain-selector"""
    chain_selector: str
    is_testnet: bool = True
    rpc_override: Optional[str] = None

    class Config:
        extra = "forbid"


class RpcEndpointConfig(BaseModel):
    """Config schema for rpc-endpoint"""
    chain_selector_name: str
    http_rpc_url: str
    ws_rpc_url: Optional[str] = None

    class Config:
        extra = "forbid"


class WalletSignerConfig(BaseModel):
    """Config schema for wallet-signer"""
    env_var_name: str = "CRE_ETH_PRIVATE_KEY"
    signer_type: Literal["env-var", "kms"] = "env-var"

    class Config:
        extra = "forbid"


# Port types. "any" matches everything; "json" also accepts scalars.
PORT_TYPES = {"any", "event", "json", "number", "bool", "string", "bytes", "address", "chain", "secret", "signer"}
_JSON_SCALARS = {"number", "bool", "string"}


def ports_compatible(source_type: str, target_type: str) -> bool:
    if "any" in (source_type, target_type) or source_type == target_type:
        return True
    return target_type == "json" and source_type in _JSON_SCALARS


@dataclass(frozen=True)
class KindSpec:
    kind: str
    category: NodeCategory
    schema: Type[BaseModel]
    inputs: Dict[str, str] = field(default_factory=dict)
    outputs: Dict[str, str] = field(default_factory=dict)

    @property
    def is_trigger(self) -> bool:
        return self.kind in TRIGGER_KINDS

    @property
    def is_effect(self) -> bool:
        return self.kind in EFFECT_KINDS

    @property
    def is_provider(self) -> bool:
        return self.category in (NodeCategory.CONTRACT, NodeCategory.CHAIN_CONFIG) or self.kind == "secrets-access"


_BINDINGS = {"chain": "chain", "contract": "address"}

# Kind catalog registry
KIND_CATALOG: Dict[str, KindSpec] = {spec.kind: spec for spec in [
    KindSpec("cron-trigger", NodeCategory.TRIGGER, CronTriggerConfig, {}, {"out": "event"}),
    KindSpec("http-trigger", NodeCategory.TRIGGER, HttpTriggerConfig, {}, {"out": "event"}),
    KindSpec("evm-log-trigger", NodeCategory.TRIGGER, EvmLogTriggerConfig, dict(_BINDINGS), {"out": "event"}),
    KindSpec("http-fetch", NodeCategory.CAPABILITY, HttpFetchConfig, {"in": "any", "auth": "secret"}, {"out": "json"}),
    KindSpec("evm-read", NodeCategory.CAPABILITY, EvmReadConfig, {"in": "any", **_BINDINGS}, {"out": "json"}),
    KindSpec("evm-write", NodeCategory.CAPABILITY, EvmWriteConfig,
             {"in": "any", "data": "bytes", "value": "number", "signer": "signer", **_BINDINGS}, {"out": "json"}),
    KindSpec("secrets-access", NodeCategory.CAPABILITY, SecretsAccessConfig, {}, {"out": "secret"}),
    KindSpec("node-mode", NodeCategory.CAPABILITY, AggregationConfig, {"in": "any"}, {"out": "number"}),
    KindSpec("data-transform", NodeCategory.LOGIC, DataTransformConfig, {"in": "any"}, {"out": "any"}),
    KindSpec("condition", NodeCategory.LOGIC, ConditionConfig, {"in": "any"},
             {"out": "any", "else": "any", "result": "bool"}),
    KindSpec("abi-encode", NodeCategory.LOGIC, AbiEncodeConfig, {"in": "any"}, {"out": "bytes"}),
    KindSpec("abi-decode", NodeCategory.LOGIC, AbiDecodeConfig, {"in": "bytes"}, {"out": "json"}),
    KindSpec("consensus-aggregation", NodeCategory.LOGIC, AggregationConfig, {"in": "any"}, {"out": "number"}),
    KindSpec("price-feed-consumer", NodeCategory.CONTRACT, PriceFeedConsumerConfig, {"chain": "chain"}, {"out": "address"}),
    KindSpec("ireceiver-contract", NodeCategory.CONTRACT, ReceiverContractConfig, {}, {"out": "address"}),
    KindSpec("contract-address", NodeCategory.CONTRACT, ContractAddressConfig, {}, {"out": "address"}),
    KindSpec("chain-selector", NodeCategory.CHAIN_CONFIG, ChainSelectorConfig, {}, {"out": "chain"}),
    KindSpec("rpc-endpoint", NodeCategory.CHAIN_CONFIG, RpcEndpointConfig, {}, {"out": "chain"}),
    KindSpec("wallet-signer", NodeCategory.CHAIN_CONFIG, WalletSignerConfig, {}, {"out": "signer"}),
]}


def get_kind(kind: str) -> Optional[KindSpec]:
    return KIND_CATALOG.get(kind)


def config_errors(kind: str, config: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Validates config against the kind's schema; returns pydantic error dicts"""
    spec = KIND_CATALOG.get(kind)
    if spec is None:
        raise ValueError(f"Unknown node kind: {kind}")

    try:
        spec.schema(**config)
    except ValidationError as e:
        return e.errors()
    return []


def parse_config(kind: str, config: Dict[str, Any]) -> BaseModel:
    """Returns the config model, ignoring keys the kind does not define"""
    schema = KIND_CATALOG[kind].schema
    return schema(**{k: v for k, v in config.items() if k in schema.model_fields})


def derive_node_state(kind: str, config: Dict[str, Any], previous: Optional[NodeState] = None) -> NodeState:
    if not config:
        return NodeState.DRAFT
    if kind in KIND_CATALOG and not config_errors(kind, config):
        return NodeState.READY
    if previous in (NodeState.READY, NodeState.ERROR):
        return NodeState.ERROR
    return NodeState.CONFIGURED
