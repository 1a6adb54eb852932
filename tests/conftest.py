# tests/conftest.py
"""
Shared builders for paramflow tests.

Procedures are assembled by hand: a :class:`World` holds the well-known
types and the mapping-backed collaborators, and offers helpers that
build methods, operation trees and small CFG shapes.
"""

import pytest

from paramflow.analysis import ParameterValidationAnalysis
from paramflow.collaborators import (
    EXCEPTION_TYPE,
    SERIALIZATION_INFO_TYPE,
    STRING_TYPE,
    Collaborators,
    MappingCfgProvider,
    MappingNullability,
    standard_well_known_types,
)
from paramflow.config import AnalysisOptions
from paramflow.ctrlflow_graph import ControlFlowGraph, EdgeKind
from paramflow.locations import AbstractLocation, SimplePointsTo
from paramflow.operations import (
    invocation,
    member_reference,
    parameter_reference,
    statement,
)
from paramflow.symbols import (
    Accessibility,
    MethodKind,
    MethodSymbol,
    ParameterSymbol,
    TypeSymbol,
)


class World:
    """Types, collaborators and builders for one test."""

    def __init__(self):
        self.types = standard_well_known_types()
        self.string = self.types.well_known_type(STRING_TYPE)
        self.exception = self.types.well_known_type(EXCEPTION_TYPE)
        self.serialization_info = self.types.well_known_type(SERIALIZATION_INFO_TYPE)
        self.object = TypeSymbol("System.Object")
        self.int = TypeSymbol("System.Int32", is_reference_type=False)
        self.widget = TypeSymbol("Sample.Widget")
        self.cfgs = MappingCfgProvider()
        self.nullability = MappingNullability()
        self.points_to = SimplePointsTo()

    # ---- collaborators -------------------------------------------------

    def collaborators(self, **overrides):
        kwargs = dict(
            cfg_provider=self.cfgs,
            points_to=self.points_to,
            nullability=self.nullability,
            well_known_types=self.types,
        )
        kwargs.update(overrides)
        return Collaborators(**kwargs)

    def analysis(self, **options):
        return ParameterValidationAnalysis(
            self.collaborators(), AnalysisOptions(**options)
        )

    def analyze(self, method, **options):
        return self.analysis(**options).analyze(method)

    # ---- symbols -------------------------------------------------------

    def method(
        self,
        name,
        params=("p",),
        accessibility=Accessibility.PUBLIC,
        containing_type=None,
        **kwargs,
    ):
        """``params`` items are names (typed ``object``) or ``(name, type)``."""
        parameters = []
        for item in params:
            if isinstance(item, str):
                parameters.append(ParameterSymbol(item, self.object))
            else:
                name_, type_ = item[0], item[1]
                attrs = tuple(item[2]) if len(item) > 2 else ()
                parameters.append(ParameterSymbol(name_, type_, attributes=attrs))
        return MethodSymbol(
            name,
            containing_type or self.widget,
            parameters,
            accessibility=accessibility,
            **kwargs,
        )

    def private(self, name, params=("p",), **kwargs):
        return self.method(name, params, accessibility=Accessibility.PRIVATE, **kwargs)

    def lambda_in(self, outer, name="<lambda>", params=()):
        return self.method(
            name, params, accessibility=Accessibility.PRIVATE,
            kind=MethodKind.LAMBDA, containing_method=outer,
        )

    def is_null_or_empty(self):
        return MethodSymbol(
            "IsNullOrEmpty", self.string,
            [ParameterSymbol("value", self.string)],
            is_static=True,
        )

    # ---- CFG shapes ----------------------------------------------------

    def straight_line(self, method, *operations):
        """entry → [operations] → exit"""
        cfg = ControlFlowGraph(method)
        body = cfg.add_block(list(operations))
        cfg.add_edge(cfg.entry, body)
        cfg.add_edge(body, cfg.exit, EdgeKind.RETURN)
        return self.cfgs.register(cfg)

    def diamond(self, method, cond, then_ops, else_ops, join_ops):
        """entry → cond ⇉ then/else → join → exit; returns (cfg, blocks)."""
        cfg = ControlFlowGraph(method)
        b_cond = cfg.add_block(list(cond))
        b_then = cfg.add_block(list(then_ops))
        b_else = cfg.add_block(list(else_ops))
        b_join = cfg.add_block(list(join_ops))
        cfg.add_edge(cfg.entry, b_cond)
        cfg.add_edge(b_cond, b_then, EdgeKind.BRANCH_TRUE)
        cfg.add_edge(b_cond, b_else, EdgeKind.BRANCH_FALSE)
        cfg.add_edge(b_then, b_join)
        cfg.add_edge(b_else, b_join)
        cfg.add_edge(b_join, cfg.exit, EdgeKind.RETURN)
        self.cfgs.register(cfg)
        return cfg, (b_cond, b_then, b_else, b_join)


def param(method, name):
    return next(p for p in method.parameters if p.name == name)


def loc(parameter):
    return AbstractLocation.for_parameter(parameter)


def deref(parameter, pos, member="Length"):
    """``parameter.member;`` with the parameter read at *pos*."""
    return statement(
        member_reference(parameter_reference(parameter, pos), member, pos + 1)
    )


def call(method, *args, pos=None, instance=None):
    return statement(invocation(method, list(args), instance=instance, pos=pos))


@pytest.fixture
def world():
    return World()
