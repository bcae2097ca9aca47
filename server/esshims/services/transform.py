import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Parser, Node

from esshims.config import TSX_EXTENSIONS
from esshims.services.meta import GlobalUsage, InstanceUsage, StaticUsage, UsageMeta
from esshims.services.provider import PolyfillProvider

# Load TypeScript and TSX grammars. Plain JavaScript parses fine with either.
TYPESCRIPT_LANGUAGE = Language(tstypescript.language_typescript())
TSX_LANGUAGE = Language(tstypescript.language_tsx())

GLOBAL_OBJECT = "globalThis"

MEMBER_TYPES = {"member_expression", "subscript_expression"}
CHAIN_TYPES = MEMBER_TYPES | {"call_expression"}
NON_REFERENCE_PARENTS = {
    "import_specifier",
    "export_specifier",
    "namespace_import",
    "namespace_export",
    "jsx_opening_element",
    "jsx_closing_element",
    "jsx_self_closing_element",
    "jsx_attribute",
    "jsx_namespace_name",
    "nested_identifier",
}
ASSIGNMENT_TYPES = {"assignment_expression", "augmented_assignment_expression"}


def get_parser(filename: str) -> Parser:
    is_tsx = Path(filename).suffix.lower() in TSX_EXTENSIONS
    return Parser(TSX_LANGUAGE if is_tsx else TYPESCRIPT_LANGUAGE)


def _text(node: Node) -> str:
    return node.text.decode("utf-8", errors="ignore")


def _walk(root: Node) -> Iterator[Node]:
    """Pre-order traversal without recursion (minified bundles nest deeply)."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


# --- Bindings ---

def _pattern_names(node: Optional[Node]) -> List[str]:
    """Names introduced by a binding pattern such as `{ a, b: [c, ...d] = [] }`."""
    if node is None:
        return []

    if node.type in {"identifier", "shorthand_property_identifier_pattern"}:
        return [_text(node)]

    # `{ key: value }` binds only the value side.
    if node.type == "pair_pattern":
        return _pattern_names(node.child_by_field_name("value"))

    # `x = default` and `{ x = default }` bind only the left side.
    if node.type in {"assignment_pattern", "object_assignment_pattern"}:
        return _pattern_names(node.child_by_field_name("left"))

    if node.type in {"object_pattern", "array_pattern", "rest_pattern"}:
        names: List[str] = []
        for child in node.named_children:
            names.extend(_pattern_names(child))
        return names

    return []


def _import_clause_names(clause: Node) -> List[str]:
    names: List[str] = []
    for node in _walk(clause):
        if node.type == "import_specifier":
            local = node.child_by_field_name("alias") or node.child_by_field_name("name")
            if local is not None:
                names.append(_text(local))
        elif node.type == "identifier" and node.parent is not None and node.parent.type != "import_specifier":
            # Default import (`import Foo from`) or namespace import (`* as ns`).
            names.append(_text(node))
    return names


def collect_bindings(root: Node) -> Set[str]:
    """
    Every name declared anywhere in the file.

    Scoping is flattened on purpose: a name declared in any scope shadows the
    global of the same name everywhere in the file, so a local `Array` never
    gets polyfilled.
    """
    bindings: Set[str] = set()

    for node in _walk(root):
        t = node.type
        if t == "variable_declarator":
            bindings.update(_pattern_names(node.child_by_field_name("name")))
        elif t in {
            "function_declaration",
            "generator_function_declaration",
            "function_expression",
            "function",
            "generator_function",
            "class_declaration",
            "class",
            "abstract_class_declaration",
        }:
            name_node = node.child_by_field_name("name")
            if name_node is not None:
                bindings.add(_text(name_node))
        elif t in {"required_parameter", "optional_parameter"}:
            bindings.update(_pattern_names(node.child_by_field_name("pattern")))
        elif t == "formal_parameters":
            # Plain JS-style parameters that are not wrapped in required_parameter.
            for child in node.named_children:
                bindings.update(_pattern_names(child))
        elif t == "arrow_function":
            param = node.child_by_field_name("parameter")
            if param is not None:
                bindings.update(_pattern_names(param))
        elif t == "catch_clause":
            bindings.update(_pattern_names(node.child_by_field_name("parameter")))
        elif t == "for_in_statement":
            if any(c.type in {"const", "let", "var"} for c in node.children):
                bindings.update(_pattern_names(node.child_by_field_name("left")))
        elif t == "import_clause":
            bindings.update(_import_clause_names(node))

    return bindings


# --- Source editing ---

def to_identifier(name: str) -> str:
    """`Array.prototype.includes` -> `ArrayPrototypeIncludes`."""
    name = re.sub(r"[^a-zA-Z0-9$_]", "-", name)
    name = re.sub(r"^[-0-9]+", "", name)
    name = re.sub(r"[-\s]+(.)?", lambda m: m.group(1).upper() if m.group(1) else "", name)
    return name or "_"


@dataclass
class UsageSite:
    """Node handed to the provider; `receiver` is set for instance member reads."""
    node: Node
    receiver: Optional[Node] = None


@dataclass
class _Reference:
    reference: str

    def render(self, editor: "SourceEditor") -> bytes:
        return self.reference.encode("utf-8")


@dataclass
class _MethodCall:
    """`recv.method(args)` rewritten to `reference.call(recv, args)`."""
    reference: str
    receiver: Node
    arguments: Node

    def render(self, editor: "SourceEditor") -> bytes:
        receiver = editor.render_node(self.receiver)
        args = editor.render_node(self.arguments).strip()
        inner = args[1:-1].strip()
        call_args = receiver + b", " + inner if inner else receiver
        return self.reference.encode("utf-8") + b".call(" + call_args + b")"


_NodeKey = Tuple[int, int, str]


def _key(node: Node) -> _NodeKey:
    return (node.start_byte, node.end_byte, node.type)


class SourceEditor:
    """
    Collects import injections and node replacements for one file, then
    renders the rewritten source.
    """

    def __init__(self, source: bytes, root: Node):
        self.source = source
        self.root = root
        self.global_imports: List[str] = []
        # module path -> local binding, in first-use order
        self.default_imports: Dict[str, str] = {}
        self._replacements: Dict[_NodeKey, Union[_Reference, _MethodCall]] = {}
        self._taken: Set[str] = {
            _text(n) for n in _walk(root) if n.type.endswith("identifier")
        }

    @property
    def changed(self) -> bool:
        return bool(self.global_imports or self.default_imports or self._replacements)

    def inject_global_import(self, module_path: str) -> None:
        if module_path not in self.global_imports:
            self.global_imports.append(module_path)

    def inject_default_import(self, module_path: str, name_hint: str) -> str:
        existing = self.default_imports.get(module_path)
        if existing is not None:
            return existing
        binding = self._generate_uid(name_hint)
        self.default_imports[module_path] = binding
        return binding

    def replace(self, site: UsageSite, reference: str) -> None:
        node = site.node
        parent = node.parent
        if (
            site.receiver is not None
            and parent is not None
            and parent.type == "call_expression"
            and parent.child_by_field_name("function") == node
        ):
            arguments = parent.child_by_field_name("arguments")
            if arguments is not None and arguments.type == "arguments":
                self._replacements[_key(parent)] = _MethodCall(reference, site.receiver, arguments)
                return
        self._replacements[_key(node)] = _Reference(reference)

    def _generate_uid(self, name_hint: str) -> str:
        base = re.sub(r"\d+$", "", to_identifier(name_hint).lstrip("_")) or "ref"
        i = 1
        while True:
            uid = f"_{base}" if i == 1 else f"_{base}{i}"
            if uid not in self._taken:
                self._taken.add(uid)
                return uid
            i += 1

    def _has_edits_within(self, node: Node) -> bool:
        return any(
            start >= node.start_byte and end <= node.end_byte
            for start, end, _ in self._replacements
        )

    def render_node(self, node: Node) -> bytes:
        replacement = self._replacements.get(_key(node))
        if replacement is not None:
            return replacement.render(self)
        if not self._has_edits_within(node):
            return self.source[node.start_byte:node.end_byte]

        out: List[bytes] = []
        pos = node.start_byte
        for child in node.children:
            out.append(self.source[pos:child.start_byte])
            out.append(self.render_node(child))
            pos = child.end_byte
        out.append(self.source[pos:node.end_byte])
        return b"".join(out)

    def _import_offset(self) -> int:
        """Byte offset after the hashbang line and the directive prologue."""
        offset = 0
        for child in self.root.children:
            if child.type == "hash_bang_line":
                offset = child.end_byte
                continue
            if (
                child.type == "expression_statement"
                and child.named_child_count == 1
                and child.named_children[0].type == "string"
            ):
                offset = child.end_byte
                continue
            break
        return offset

    def render(self) -> str:
        if not self.changed:
            return self.source.decode("utf-8")

        body = (
            self.source[:self.root.start_byte]
            + self.render_node(self.root)
            + self.source[self.root.end_byte:]
        )

        lines = [f'import "{module}";' for module in self.global_imports]
        lines.extend(
            f'import {binding} from "{module}";'
            for module, binding in self.default_imports.items()
        )
        if not lines:
            return body.decode("utf-8")

        offset = self._import_offset()
        if offset == 0:
            header = "\n".join(lines) + "\n"
        else:
            header = "\n" + "\n".join(lines)
        return (body[:offset] + header.encode("utf-8") + body[offset:]).decode("utf-8")


# --- Usage detection ---

def _member_key(node: Node) -> Optional[str]:
    if node.type == "member_expression":
        prop = node.child_by_field_name("property")
        if prop is not None and prop.type == "property_identifier":
            return _text(prop)
        return None

    # obj["includes"]
    index = node.child_by_field_name("index")
    if index is not None and index.type == "string":
        fragments = [c for c in index.named_children if c.type == "string_fragment"]
        if len(fragments) == 1:
            return _text(fragments[0])
        if not fragments:
            return ""
    return None


def _is_write_target(node: Node) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type in ASSIGNMENT_TYPES and parent.child_by_field_name("left") == node:
        return True
    if parent.type == "update_expression":
        return True
    if parent.type == "unary_expression" and any(c.type == "delete" for c in parent.children):
        return True
    return False


def _in_optional_chain(node: Node) -> bool:
    """True when `node` sits in a chain that can short-circuit (`a?.b.c`)."""
    current: Optional[Node] = node
    while current is not None and current.type in CHAIN_TYPES:
        if any(c.type == "optional_chain" for c in current.children):
            return True
        field_name = "function" if current.type == "call_expression" else "object"
        current = current.child_by_field_name(field_name)
    return False


def _can_rebind_receiver(node: Node, receiver: Node) -> bool:
    """
    Whether `recv.method` can be rewritten to a standalone binding without
    changing what the expression evaluates to.
    """
    if receiver.type == "super":
        return False
    if _in_optional_chain(node):
        return False
    parent = node.parent
    if parent is not None and parent.type == "call_expression" and parent.child_by_field_name("function") == node:
        if any(c.type == "optional_chain" for c in parent.children):
            return False
        # Tagged templates have no argument list to prepend the receiver to.
        arguments = parent.child_by_field_name("arguments")
        return arguments is not None and arguments.type == "arguments"
    return True


class UsageVisitor:
    """
    Walks one syntax tree and reports every global, static and instance
    usage to the provider, in source order.
    """

    def __init__(self, provider: PolyfillProvider, editor: SourceEditor, bindings: Set[str]):
        self.provider = provider
        self.editor = editor
        self.bindings = bindings
        self.pure = provider.options.method == "usage-pure"

    def _is_global_reference(self, node: Node) -> bool:
        if _text(node) in self.bindings:
            return False
        parent = node.parent
        if parent is None:
            return True
        if parent.type in NON_REFERENCE_PARENTS:
            return False
        return True

    def _member_meta(self, node: Node) -> Optional[UsageMeta]:
        key = _member_key(node)
        if not key:
            return None

        obj = node.child_by_field_name("object")
        if obj is not None and obj.type == "identifier" and self._is_global_reference(obj):
            name = _text(obj)
            if name == GLOBAL_OBJECT:
                return GlobalUsage(key)
            if name in self.provider.catalog.static:
                return StaticUsage(name, key)
        return InstanceUsage(key)

    def _call(self, meta: UsageMeta, site: UsageSite) -> None:
        if self.pure:
            if _is_write_target(site.node):
                return
            if site.receiver is not None and not _can_rebind_receiver(site.node, site.receiver):
                return
            self.provider.usage_pure(meta, self.editor, site)
        else:
            self.provider.usage_global(meta, self.editor, site)

    def visit(self, root: Node) -> None:
        for node in _walk(root):
            if node.type == "identifier":
                if self._is_global_reference(node) and not _is_write_target(node):
                    self._call(GlobalUsage(_text(node)), UsageSite(node))
            elif node.type in MEMBER_TYPES:
                meta = self._member_meta(node)
                if meta is None:
                    continue
                receiver = node.child_by_field_name("object") if isinstance(meta, InstanceUsage) else None
                self._call(meta, UsageSite(node, receiver))


@dataclass
class TransformResult:
    code: str
    changed: bool = False
    # Polyfill names injected in this file, in injection order (may repeat).
    polyfills: List[str] = field(default_factory=list)
    missing_dependencies: List[str] = field(default_factory=list)


def transform_source(code: str, filename: str, provider: PolyfillProvider) -> TransformResult:
    """Run one compilation unit through the provider and return the rewritten code."""
    content = code.encode("utf-8")
    tree = get_parser(filename).parse(content)

    editor = SourceEditor(content, tree.root_node)
    provider.pre()
    UsageVisitor(provider, editor, collect_bindings(tree.root_node)).visit(tree.root_node)
    used = list(provider.used)
    provider.post()

    return TransformResult(
        code=editor.render(),
        changed=editor.changed,
        polyfills=used,
        missing_dependencies=sorted(provider.missing_deps),
    )


def transform_file(file_path: Union[str, Path], provider: PolyfillProvider) -> TransformResult:
    path = Path(file_path)
    return transform_source(path.read_text(encoding="utf-8"), str(path), provider)
