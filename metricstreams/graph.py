"""
Terraform resource graph with deferred cross-resource references.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

AWS_PROVIDER_SOURCE = "hashicorp/aws"
AWS_PROVIDER_VERSION = "~> 5.0"


class GraphError(ValueError):
    """Raised when the resource graph is not internally consistent."""


@dataclass(frozen=True)
class Ref:
    """Reference to an attribute of another block, resolved by Terraform at apply time."""
    address: str    # "aws_s3_bucket.backup" or "data.aws_iam_policy_document.x"
    attribute: str  # "arn", "name", "json", ...
    suffix: str = ""  # appended after the expression, e.g. "/*"

    def expression(self) -> str:
        return "${" + f"{self.address}.{self.attribute}" + "}" + self.suffix

    def with_suffix(self, suffix: str) -> "Ref":
        return Ref(self.address, self.attribute, self.suffix + suffix)


@dataclass
class Block:
    """A single resource or data source declaration."""
    kind: str  # "resource" | "data"
    type: str
    name: str
    body: Dict[str, Any]

    @property
    def address(self) -> str:
        if self.kind == "data":
            return f"data.{self.type}.{self.name}"
        return f"{self.type}.{self.name}"

    def ref(self, attribute: str) -> Ref:
        return Ref(self.address, attribute)


@dataclass
class Output:
    """Exported stack value."""
    name: str
    value: Any
    description: Optional[str] = None
    sensitive: bool = False


@dataclass
class ResourceGraph:
    """
    Ordered collection of blocks and outputs for one stack.

    Blocks reference each other through Ref objects; nothing is interpolated
    until the graph is rendered.
    """
    region: str
    tags: Dict[str, str] = field(default_factory=dict)
    blocks: List[Block] = field(default_factory=list)
    outputs: List[Output] = field(default_factory=list)

    def _add(self, block: Block) -> Block:
        if self.find(block.address) is not None:
            raise GraphError(f"Duplicate block address: {block.address}")
        self.blocks.append(block)
        logger.debug(f"Declared {block.address}")
        return block

    def add_resource(self, type_: str, name: str, body: Dict[str, Any]) -> Block:
        return self._add(Block("resource", type_, name, body))

    def add_data(self, type_: str, name: str, body: Dict[str, Any]) -> Block:
        return self._add(Block("data", type_, name, body))

    def add_output(self, name: str, value: Any, description: Optional[str] = None,
                   sensitive: bool = False) -> Output:
        if any(o.name == name for o in self.outputs):
            raise GraphError(f"Duplicate output: {name}")
        output = Output(name=name, value=value, description=description, sensitive=sensitive)
        self.outputs.append(output)
        return output

    def find(self, address: str) -> Optional[Block]:
        for block in self.blocks:
            if block.address == address:
                return block
        return None

    def blocks_of_type(self, type_: str, kind: str = "resource") -> List[Block]:
        return [b for b in self.blocks if b.type == type_ and b.kind == kind]

    def dependencies(self, address: str) -> Set[str]:
        """Addresses the given block references."""
        block = self.find(address)
        if block is None:
            raise GraphError(f"Unknown block: {address}")
        return {ref.address for ref in _collect_refs(block.body)}

    def topological_order(self) -> List[str]:
        """
        Block addresses ordered so that every block follows the blocks it references.

        Ties keep declaration order.

        Raises:
            GraphError: If a reference is dangling or the references form a cycle
        """
        deps = {block.address: self.dependencies(block.address) for block in self.blocks}
        for address, targets in deps.items():
            for target in targets:
                if target not in deps:
                    raise GraphError(f"{address} references undeclared block {target}")

        ordered: List[str] = []
        placed: Set[str] = set()
        pending = [block.address for block in self.blocks]
        while pending:
            ready = [a for a in pending if deps[a] <= placed]
            if not ready:
                raise GraphError(f"Reference cycle between: {', '.join(sorted(pending))}")
            for address in ready:
                ordered.append(address)
                placed.add(address)
            pending = [a for a in pending if a not in placed]
        return ordered

    def validate(self) -> None:
        """Check every reference, including those made by outputs, resolves."""
        self.topological_order()
        for output in self.outputs:
            for ref in _collect_refs(output.value):
                if self.find(ref.address) is None:
                    raise GraphError(f"Output {output.name} references undeclared block {ref.address}")

    def to_terraform(self) -> Dict[str, Any]:
        """Render the graph as a Terraform JSON configuration document."""
        self.validate()

        provider: Dict[str, Any] = {"region": self.region}
        if self.tags:
            provider["default_tags"] = {"tags": dict(self.tags)}

        doc: Dict[str, Any] = {
            "terraform": {
                "required_providers": {
                    "aws": {"source": AWS_PROVIDER_SOURCE, "version": AWS_PROVIDER_VERSION}
                }
            },
            "provider": {"aws": provider},
        }

        for block in self.blocks:
            section = doc.setdefault(block.kind, {})
            section.setdefault(block.type, {})[block.name] = _render(block.body)

        if self.outputs:
            doc["output"] = {}
            for output in self.outputs:
                rendered: Dict[str, Any] = {"value": _render(output.value)}
                if output.description:
                    rendered["description"] = output.description
                if output.sensitive:
                    rendered["sensitive"] = True
                doc["output"][output.name] = rendered

        return doc

    def to_json(self) -> str:
        return json.dumps(self.to_terraform(), indent=2)


def _collect_refs(value: Any) -> List[Ref]:
    if isinstance(value, Ref):
        return [value]
    if isinstance(value, dict):
        return [r for v in value.values() for r in _collect_refs(v)]
    if isinstance(value, (list, tuple)):
        return [r for v in value for r in _collect_refs(v)]
    return []


def _render(value: Any) -> Any:
    if isinstance(value, Ref):
        return value.expression()
    if isinstance(value, dict):
        return {k: _render(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_render(v) for v in value]
    return value
