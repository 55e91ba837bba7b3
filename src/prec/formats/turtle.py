"""
Turtle-star / TriG-star parser using pyparsing.

Supports the subset of Turtle used by PREC contexts and PREC-0 graphs:

- `@prefix` / `PREFIX` and `@base` / `BASE` directives
- IRIs, prefixed names and the `a` keyword
- blank node labels, `[]` and `[ ... ]` blank node property lists
- collections `( ... )`
- string literals (short and long forms) with language tag or datatype,
  numeric and boolean shorthands
- RDF-star quoted triples `<< s p o >>`, nested to any depth
- `;` and `,` predicate/object lists
- TriG graph blocks: `GRAPH :g { ... }`, `:g { ... }` and `{ ... }`

Blank node labels written in the document are kept. Anonymous blank nodes
get `b<document>_<n>` labels, so two parsed documents never share one.

Example:
    quads = parse_turtle('''
        @prefix prec: <http://bruy.at/prec#> .
        :knows prec:IRIOfProperty "knows" .
    ''', prefixes={"": "http://example.org/"})
"""

import itertools
import re
from dataclasses import dataclass, field
from io import StringIO
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urljoin

import pyparsing as pp
from pyparsing import (
    CaselessKeyword, Forward, Group, Keyword, Literal as Lit, Optional as Opt,
    Regex, StringEnd, Suppress, ZeroOrMore,
)

from prec.errors import ParseError
from prec.terms import (
    DEFAULT_GRAPH, IRI, BlankNode, Literal, Quad, Term,
    XSD_BOOLEAN, XSD_DECIMAL, XSD_DOUBLE, XSD_INTEGER,
)

RDF_NS = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"


# =============================================================================
# Syntax tree
# =============================================================================

@dataclass
class _IRIRef:
    raw: str


@dataclass
class _PName:
    text: str


@dataclass
class _BNodeLabel:
    label: str


@dataclass
class _TypeKeyword:
    pass


@dataclass
class _LangTag:
    tag: str


@dataclass
class _LiteralNode:
    value: str
    language: Optional[str] = None
    datatype: Any = None


@dataclass
class _BNodePropertyList:
    predicate_objects: list = field(default_factory=list)


@dataclass
class _Collection:
    items: list = field(default_factory=list)


@dataclass
class _QuotedNode:
    subject: Any
    predicate: Any
    object: Any


@dataclass
class _PredicateObjects:
    verb: Any
    objects: list


@dataclass
class _Triples:
    subject: Any
    predicate_objects: list


@dataclass
class _PrefixDecl:
    name: str
    iri: _IRIRef


@dataclass
class _BaseDecl:
    iri: _IRIRef


@dataclass
class _GraphBlock:
    label: Any
    statements: list


_ESCAPE = re.compile(r'\\(?:u([0-9A-Fa-f]{4})|U([0-9A-Fa-f]{8})|(.))', re.S)
_ECHARS = {
    "t": "\t", "b": "\b", "n": "\n", "r": "\r", "f": "\f",
    '"': '"', "'": "'", "\\": "\\",
}


def _unescape(text: str) -> str:
    def replace(match):
        if match.group(1):
            return chr(int(match.group(1), 16))
        if match.group(2):
            return chr(int(match.group(2), 16))
        return _ECHARS.get(match.group(3), match.group(3))

    return _ESCAPE.sub(replace, text)


# =============================================================================
# Grammar
# =============================================================================

class TurtleStarParser:
    """
    Parser for Turtle-star and TriG-star documents.

    The grammar builds a small syntax tree; the tree is then walked in
    document order so prefix declarations apply to the statements that
    follow them.
    """

    def __init__(self):
        self._build_grammar()

    def _build_grammar(self):
        """Build the pyparsing grammar for Turtle-star."""

        pp.ParserElement.enable_packrat()

        # =================================================================
        # Punctuation
        # =================================================================

        DOT = Suppress(Lit("."))
        SEMI = Suppress(Lit(";"))
        COMMA = Suppress(Lit(","))
        LBRACK = Suppress(Lit("["))
        RBRACK = Suppress(Lit("]"))
        LPAREN = Suppress(Lit("("))
        RPAREN = Suppress(Lit(")"))
        LBRACE = Suppress(Lit("{"))
        RBRACE = Suppress(Lit("}"))
        LQUOTE = Suppress(Lit("<<"))
        RQUOTE = Suppress(Lit(">>"))

        # =================================================================
        # Terms
        # =================================================================

        iriref = Regex(r'<[^<>"{}|^`\\\s]*>').set_parse_action(
            lambda t: _IRIRef(t[0][1:-1])
        )

        pname_ns = Regex(r'(?:[A-Za-z](?:[\w\-.]*[\w\-])?)?:')
        prefixed_name = Regex(
            r'(?:[A-Za-z](?:[\w\-.]*[\w\-])?)?:(?:[\w\-:%](?:[\w\-.:%]*[\w\-:%])?)?'
        ).set_parse_action(lambda t: _PName(t[0]))

        iri = iriref | prefixed_name

        blank_node_label = Regex(r'_:[A-Za-z0-9_](?:[\w\-.]*[\w\-])?').set_parse_action(
            lambda t: _BNodeLabel(t[0][2:])
        )

        type_keyword = Keyword("a").set_parse_action(lambda t: _TypeKeyword())

        # Strings
        long_double = Regex(r'"""(?:"(?!"")|[^"\\]|\\.)*"""', flags=re.S).set_parse_action(
            lambda t: _unescape(t[0][3:-3])
        )
        long_single = Regex(r"'''(?:'(?!'')|[^'\\]|\\.)*'''", flags=re.S).set_parse_action(
            lambda t: _unescape(t[0][3:-3])
        )
        short_double = Regex(r'"(?:[^"\\\n\r]|\\.)*"').set_parse_action(
            lambda t: _unescape(t[0][1:-1])
        )
        short_single = Regex(r"'(?:[^'\\\n\r]|\\.)*'").set_parse_action(
            lambda t: _unescape(t[0][1:-1])
        )
        string = long_double | long_single | short_double | short_single

        lang_tag = Regex(r'@[A-Za-z]+(?:-[A-Za-z0-9]+)*').set_parse_action(
            lambda t: _LangTag(t[0][1:])
        )

        def make_literal(tokens):
            value = tokens[0]
            if len(tokens) == 1:
                return _LiteralNode(value)
            if isinstance(tokens[1], _LangTag):
                return _LiteralNode(value, language=tokens[1].tag)
            return _LiteralNode(value, datatype=tokens[1])

        rdf_literal = (
            string + Opt(lang_tag | (Suppress(Lit("^^")) + iri))
        ).set_parse_action(make_literal)

        double = Regex(
            r'[+-]?(?:\d+\.\d*[eE][+-]?\d+|\.\d+[eE][+-]?\d+|\d+[eE][+-]?\d+)'
        ).set_parse_action(lambda t: Literal(t[0], datatype=XSD_DOUBLE))
        decimal = Regex(r'[+-]?\d*\.\d+').set_parse_action(
            lambda t: Literal(t[0], datatype=XSD_DECIMAL)
        )
        integer = Regex(r'[+-]?\d+').set_parse_action(
            lambda t: Literal(t[0], datatype=XSD_INTEGER)
        )
        boolean = (
            Keyword("true") | Keyword("false")
        ).set_parse_action(lambda t: Literal(t[0], datatype=XSD_BOOLEAN))

        literal = rdf_literal | double | decimal | integer | boolean

        # =================================================================
        # Nested structures
        # =================================================================

        obj = Forward()
        predicate_object_list = Forward()
        quoted_triple = Forward()

        collection = (LPAREN + Group(ZeroOrMore(obj)) + RPAREN).set_parse_action(
            lambda t: _Collection(list(t[0]))
        )

        def make_bnode_property_list(tokens):
            if len(tokens) == 0:
                return _BNodePropertyList()
            return _BNodePropertyList(list(tokens[0]))

        blank_node_property_list = (
            LBRACK + Opt(Group(predicate_object_list)) + RBRACK
        ).set_parse_action(make_bnode_property_list)

        quoted_term = quoted_triple | iri | blank_node_label | literal | (LBRACK + RBRACK).set_parse_action(
            lambda t: _BNodePropertyList()
        )

        verb = iri | type_keyword

        quoted_triple <<= (
            LQUOTE + quoted_term + verb + quoted_term + RQUOTE
        ).set_parse_action(lambda t: _QuotedNode(t[0], t[1], t[2]))

        obj <<= (
            quoted_triple | iri | blank_node_label | collection
            | blank_node_property_list | literal
        )

        object_list = Group(obj + ZeroOrMore(COMMA + obj))

        predicate_objects = (verb + object_list).set_parse_action(
            lambda t: _PredicateObjects(t[0], list(t[1]))
        )

        predicate_object_list <<= predicate_objects + ZeroOrMore(SEMI + Opt(predicate_objects))

        subject = quoted_triple | iri | blank_node_label | collection

        def make_triples(tokens):
            if len(tokens) == 1:
                return _Triples(tokens[0], [])
            return _Triples(tokens[0], list(tokens[1]))

        triples = (
            (subject + Group(predicate_object_list))
            | (blank_node_property_list + Opt(Group(predicate_object_list)))
        ).set_parse_action(make_triples)

        # =================================================================
        # Directives
        # =================================================================

        def make_prefix(tokens):
            return _PrefixDecl(tokens[0][:-1], tokens[1])

        prefix_decl = (
            (Suppress(Lit("@prefix")) + pname_ns + iriref + DOT)
            | (Suppress(CaselessKeyword("PREFIX")) + pname_ns + iriref)
        ).set_parse_action(make_prefix)

        base_decl = (
            (Suppress(Lit("@base")) + iriref + DOT)
            | (Suppress(CaselessKeyword("BASE")) + iriref)
        ).set_parse_action(lambda t: _BaseDecl(t[0]))

        directive = prefix_decl | base_decl

        # =================================================================
        # TriG graph blocks
        # =================================================================

        graph_label = iri | blank_node_label

        def make_graph_block(tokens):
            if len(tokens) == 1:
                return _GraphBlock(None, list(tokens[0]))
            return _GraphBlock(tokens[0], list(tokens[1]))

        graph_block = (
            Opt(Suppress(CaselessKeyword("GRAPH")))
            + Opt(graph_label)
            + LBRACE
            + Group(ZeroOrMore(triples + Opt(DOT)))
            + RBRACE
        ).set_parse_action(make_graph_block)

        statement = directive | graph_block | (triples + DOT)

        self.document = ZeroOrMore(statement) + StringEnd()
        self.document.ignore(Regex(r'#[^\n\r]*'))

    def parse(
        self,
        source: Union[str, Path, StringIO],
        prefixes: Optional[dict[str, str]] = None,
        base: Optional[str] = None,
    ) -> list[Quad]:
        """
        Parse a Turtle-star or TriG-star document.

        Args:
            source: The document as a string, a file path or a StringIO
            prefixes: Prefixes known before the first statement
            base: Base IRI used to resolve relative IRIs

        Returns:
            The quads of the document, in document order

        Raises:
            ParseError: If the document is malformed
        """
        if isinstance(source, Path):
            text = source.read_text(encoding="utf-8")
        elif isinstance(source, StringIO):
            text = source.read()
        else:
            text = source

        try:
            statements = self.document.parse_string(text, parse_all=True)
        except pp.ParseException as e:
            raise ParseError(f"Invalid Turtle document: {e}", e.lineno, e.col) from e

        emitter = _Emitter(prefixes or {}, base, text)
        for statement in statements:
            emitter.statement(statement, DEFAULT_GRAPH)
        return emitter.quads


# =============================================================================
# Syntax tree to quads
# =============================================================================

# Each parsed document gets its own prefix for generated blank node labels
_DOCUMENT_NUMBERS = itertools.count()

_USER_BNODE = re.compile(r'_:([A-Za-z0-9_](?:[\w\-.]*[\w\-])?)')
_ABSOLUTE_IRI = re.compile(r'^[A-Za-z][A-Za-z0-9+.\-]*:')


class _Emitter:
    """Walks the syntax tree in document order and produces quads."""

    def __init__(self, prefixes: dict[str, str], base: Optional[str], text: str):
        self.prefixes = dict(prefixes)
        self.base = base
        self.quads: list[Quad] = []
        self._user_labels = set(_USER_BNODE.findall(text))
        self._label_prefix = f"b{next(_DOCUMENT_NUMBERS)}_"
        self._next_label = 0

    def fresh_blank_node(self) -> BlankNode:
        while True:
            label = f"{self._label_prefix}{self._next_label}"
            self._next_label += 1
            if label not in self._user_labels:
                return BlankNode(label)

    def statement(self, node, graph: Term) -> None:
        if isinstance(node, _PrefixDecl):
            self.prefixes[node.name] = self.iri(node.iri).value
        elif isinstance(node, _BaseDecl):
            self.base = self.iri(node.iri).value
        elif isinstance(node, _GraphBlock):
            label = DEFAULT_GRAPH if node.label is None else self.term(node.label, graph)
            for inner in node.statements:
                self.statement(inner, label)
        elif isinstance(node, _Triples):
            subject = self.term(node.subject, graph)
            self.predicate_objects(subject, node.predicate_objects, graph)
        else:
            raise ParseError(f"Unexpected statement {node!r}")

    def predicate_objects(self, subject: Term, predicate_objects: list, graph: Term) -> None:
        for po in predicate_objects:
            predicate = self.term(po.verb, graph)
            for obj in po.objects:
                self.quads.append(Quad(subject, predicate, self.term(obj, graph), graph))

    def iri(self, node) -> IRI:
        if isinstance(node, _IRIRef):
            raw = _unescape(node.raw)
            if self.base is not None and not _ABSOLUTE_IRI.match(raw):
                return IRI(urljoin(self.base, raw))
            return IRI(raw)

        prefix, _, local = node.text.partition(":")
        if prefix not in self.prefixes:
            raise ParseError(f"Unknown prefix '{prefix}:' in {node.text}")
        return IRI(self.prefixes[prefix] + local.replace("\\", ""))

    def term(self, node, graph: Term) -> Term:
        if isinstance(node, (_IRIRef, _PName)):
            return self.iri(node)
        if isinstance(node, _TypeKeyword):
            return IRI(RDF_NS + "type")
        if isinstance(node, _BNodeLabel):
            return BlankNode(node.label)
        if isinstance(node, Literal):
            return node
        if isinstance(node, _LiteralNode):
            datatype = None if node.datatype is None else self.iri(node.datatype).value
            return Literal(node.value, language=node.language, datatype=datatype)
        if isinstance(node, _QuotedNode):
            return Quad(
                self.term(node.subject, graph),
                self.term(node.predicate, graph),
                self.term(node.object, graph),
            )
        if isinstance(node, _BNodePropertyList):
            blank_node = self.fresh_blank_node()
            self.predicate_objects(blank_node, node.predicate_objects, graph)
            return blank_node
        if isinstance(node, _Collection):
            return self.collection(node.items, graph)
        raise ParseError(f"Unexpected term {node!r}")

    def collection(self, items: list, graph: Term) -> Term:
        if not items:
            return IRI(RDF_NS + "nil")

        head = self.fresh_blank_node()
        current = head
        for i, item in enumerate(items):
            value = self.term(item, graph)
            self.quads.append(Quad(current, IRI(RDF_NS + "first"), value, graph))
            rest = IRI(RDF_NS + "nil") if i == len(items) - 1 else self.fresh_blank_node()
            self.quads.append(Quad(current, IRI(RDF_NS + "rest"), rest, graph))
            current = rest
        return head


_parser: Optional[TurtleStarParser] = None


def parse_turtle(
    source: Union[str, Path, StringIO],
    prefixes: Optional[dict[str, str]] = None,
    base: Optional[str] = None,
) -> list[Quad]:
    """
    Parse a Turtle-star / TriG-star document into a list of quads.

    Convenience function using a shared parser instance.
    """
    global _parser
    if _parser is None:
        _parser = TurtleStarParser()
    return _parser.parse(source, prefixes=prefixes, base=base)
