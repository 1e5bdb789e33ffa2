#!/usr/bin/env python3

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Step kinds


class ToolKind(str, Enum):
    """Closed set of tool kinds. Values match the ``tool:<kind>`` type strings."""

    # Control flow
    IF = "tool:if"
    SWITCH = "tool:switch"
    LOOP = "tool:loop"
    # Data transformation
    FILTER = "tool:filter"
    TRANSFORM = "tool:transform"
    MAP = "tool:map"
    REDUCE = "tool:reduce"
    MERGE = "tool:merge"
    SPLIT = "tool:split"
    # Data processing
    AGGREGATE = "tool:aggregate"
    SORT = "tool:sort"
    LIMIT = "tool:limit"
    COLLECT = "tool:collect"
    GROUP = "tool:group"
    LOOKUP = "tool:lookup"
    TRAVERSE = "tool:traverse"
    DELAY = "tool:delay"
    # Set operations
    PARTITION = "tool:partition"
    DISTINCT = "tool:distinct"
    WINDOW = "tool:window"
    JOIN = "tool:join"
    UNION = "tool:union"
    INTERSECT = "tool:intersect"
    DIFF = "tool:diff"
    EXISTS = "tool:exists"
    RANGE = "tool:range"
    BATCH = "tool:batch"
    # External fetch
    FETCH_API = "tool:fetch-api"
    FETCH_ORCID = "tool:fetch-orcid"
    FETCH_GEONAMES = "tool:fetch-geonames"
    FETCH_EUROPEANA = "tool:fetch-europeana"
    FETCH_GETTY = "tool:fetch-getty"
    HTTP = "tool:http"
    # Data quality
    VALIDATE = "tool:validate"
    NORMALIZE = "tool:normalize"
    ENRICH = "tool:enrich"
    DEDUPLICATE = "tool:deduplicate"
    VALIDATE_SCHEMA = "tool:validate-schema"
    CLEAN = "tool:clean"
    STANDARDIZE = "tool:standardize"
    VERIFY = "tool:verify"
    # Flow control
    TRY_CATCH = "tool:try-catch"
    RETRY = "tool:retry"
    TIMEOUT = "tool:timeout"
    CACHE = "tool:cache"
    PARALLEL = "tool:parallel"
    THROTTLE = "tool:throttle"
    WEBHOOK = "tool:webhook"
    EMAIL = "tool:email"
    LOG = "tool:log"


FETCH_TOOL_KINDS = frozenset({
    ToolKind.FETCH_API,
    ToolKind.FETCH_ORCID,
    ToolKind.FETCH_GEONAMES,
    ToolKind.FETCH_EUROPEANA,
    ToolKind.FETCH_GETTY,
    ToolKind.HTTP,
})


class ActionKind(str, Enum):
    """Closed set of action kinds. Values match the ``action:<kind>`` type strings."""

    GROUP = "action:group"
    # Node creation
    CREATE_NODE = "action:create-node"
    CREATE_NODE_TEXT = "action:create-node-text"
    CREATE_NODE_TOKENS = "action:create-node-tokens"
    CREATE_TEXT_NODE = "action:create-text-node"
    CREATE_TOKEN_NODES = "action:create-token-nodes"
    CREATE_NODE_WITH_ATTRIBUTES = "action:create-node-with-attributes"
    CREATE_NODE_COMPLETE = "action:create-node-complete"
    CREATE_CONDITIONAL_NODE = "action:create-conditional-node"
    CREATE_HIERARCHICAL_NODES = "action:create-hierarchical-nodes"
    CREATE_NODE_WITH_FILTERED_CHILDREN = "action:create-node-with-filtered-children"
    PROCESS_CHILDREN = "action:process-children"
    # Properties
    SET_PROPERTY = "action:set-property"
    EXTRACT_TEXT = "action:extract-text"
    EXTRACT_PROPERTY = "action:extract-property"
    COPY_PROPERTY = "action:copy-property"
    MERGE_PROPERTIES = "action:merge-properties"
    SPLIT_PROPERTY = "action:split-property"
    FORMAT_PROPERTY = "action:format-property"
    TRANSFORM_TEXT = "action:transform-text"
    EXTRACT_AND_NORMALIZE_ATTRIBUTES = "action:extract-and-normalize-attributes"
    EXTRACT_AND_COMPUTE_PROPERTY = "action:extract-and-compute-property"
    NORMALIZE_AND_DEDUPLICATE = "action:normalize-and-deduplicate"
    MERGE_CHILDREN_TEXT = "action:merge-children-text"
    EXTRACT_XML_CONTENT = "action:extract-xml-content"
    # Relationships
    CREATE_RELATIONSHIP = "action:create-relationship"
    DEFER_RELATIONSHIP = "action:defer-relationship"
    UPDATE_RELATIONSHIP = "action:update-relationship"
    DELETE_RELATIONSHIP = "action:delete-relationship"
    REVERSE_RELATIONSHIP = "action:reverse-relationship"
    # References and annotations
    CREATE_ANNOTATION = "action:create-annotation"
    CREATE_ANNOTATION_NODES = "action:create-annotation-nodes"
    CREATE_REFERENCE = "action:create-reference"
    CREATE_REFERENCE_CHAIN = "action:create-reference-chain"
    # Node manipulation
    UPDATE_NODE = "action:update-node"
    DELETE_NODE = "action:delete-node"
    CLONE_NODE = "action:clone-node"
    MERGE_NODES = "action:merge-nodes"
    VALIDATE_NODE = "action:validate-node"
    VALIDATE_RELATIONSHIP = "action:validate-relationship"
    REPORT_ERROR = "action:report-error"
    ADD_METADATA = "action:add-metadata"
    TAG_NODE = "action:tag-node"
    SET_TIMESTAMP = "action:set-timestamp"
    # Control
    SKIP = "action:skip"


# Pydantic Models


class WorkflowModel(BaseModel):
    """Base for workflow inputs: camelCase aliases, snake_case names, immutable."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class PropertyDefinition(WorkflowModel):
    key: str
    type: str = "string"  # 'string', 'number', 'boolean', 'date', 'array', 'object'
    required: bool = False
    default_value: Any = Field(default=None, alias="defaultValue")


class BuilderNode(WorkflowModel):
    """Label template that an XML tag name maps to."""

    id: str
    label: str
    type: str | None = None
    properties: list[PropertyDefinition] = []


class RelationshipDefinition(WorkflowModel):
    id: str | None = None
    type: str
    from_node: str | None = Field(default=None, alias="from")  # BuilderNode id
    to_node: str | None = Field(default=None, alias="to")  # BuilderNode id
    properties: list[PropertyDefinition] = []
    cardinality: str | None = None  # 'one-to-one', 'one-to-many', 'many-to-many'


class SchemaNodeType(WorkflowModel):
    labels: list[str] = []  # Extra labels appended after the primary label
    domain: str | None = None  # Domain label appended after the extra labels
    properties: dict[str, Any] = {}


class SchemaRelationType(WorkflowModel):
    domain: str | None = None
    range: str | None = None
    properties: dict[str, Any] = {}


class SchemaJson(WorkflowModel):
    nodes: dict[str, SchemaNodeType] = {}
    relations: dict[str, SchemaRelationType] = {}


class ToolNode(WorkflowModel):
    id: str
    type: ToolKind
    label: str | None = None
    target_node_id: str | None = Field(default=None, alias="targetNodeId")  # BuilderNode this tool hangs off
    config: dict[str, Any] = {}


class ActionNode(WorkflowModel):
    id: str
    type: ActionKind
    label: str | None = None
    config: dict[str, Any] = {}
    is_group: bool = Field(default=False, alias="isGroup")
    children: list[str] = []  # Child action ids, groups only
    enabled: bool | None = None  # False disables a group and everything inside it

    @property
    def is_container(self) -> bool:
        return self.is_group or self.type == ActionKind.GROUP


class CanvasEdge(WorkflowModel):
    id: str | None = None
    source: str
    target: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")


class ExecuteOptions(WorkflowModel):
    """Everything one workflow run needs."""

    xml_content: str = Field(default="", alias="xmlContent")
    graph_schema: SchemaJson | None = Field(default=None, alias="schemaJson")
    nodes: list[BuilderNode] = []
    relationships: list[RelationshipDefinition] = []
    tool_nodes: list[ToolNode] = Field(default=[], alias="toolNodes")
    tool_edges: list[CanvasEdge] = Field(default=[], alias="toolEdges")
    action_nodes: list[ActionNode] = Field(default=[], alias="actionNodes")
    action_edges: list[CanvasEdge] = Field(default=[], alias="actionEdges")
    start_node_id: str | None = Field(default=None, alias="startNodeId")
    max_depth: int | None = Field(default=None, alias="maxDepth")
    fetch_mode: str | None = Field(default=None, alias="fetchMode")  # 'await' or 'background'
    credentials: dict[str, dict[str, str]] = {}  # Credential id -> stored fields for authenticated fetch tools

    @field_validator("max_depth")
    @classmethod
    def _non_negative_depth(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError("maxDepth must be >= 0")
        return value


class ApiResponse(BaseModel):
    """Result of a research API lookup."""

    success: bool
    provider: str
    data: Any = None
    error: str | None = None
