# tests/test_step_factory.py
"""Tests for step construction: validation at add_step, expansion, ids, briefs."""

import pytest

import probity
from probity import steps
from probity.errors import InvalidStepSpec, ProbityError
from probity.rules.predicates import AllOf, ColumnRef, Compare, Distinct, Expression, NaPolicy
from probity.rules.steps import StepKind


@pytest.fixture
def agent(conjoint_df):
    return probity.create_agent(conjoint_df)


# =============================================================================
# Ids and expansion
# =============================================================================


class TestIdsAndExpansion:
    def test_ids_are_one_based_and_dense(self, agent):
        """Step ids start at 1 and have no gaps."""
        agent.add_step(steps.col_exists("a")).add_step(steps.col_vals_gt("b", 0))
        assert [s.id for s in agent.steps] == [1, 2]

    def test_multi_column_selector_expands_in_order(self, agent):
        """Two columns become two steps with consecutive ids."""
        agent.add_step(steps.col_vals_gt(["a", "b"], 6))
        agent.add_step(steps.col_vals_not_null("c"))
        built = agent.steps
        assert [s.id for s in built] == [1, 2, 3]
        assert [s.columns for s in built] == [("a",), ("b",), ("c",)]
        assert built[0].params == built[1].params

    def test_keyword_form(self, agent):
        """add_step accepts keyword arguments and normalizes operators."""
        agent.add_step(kind="col_vals_compare", columns="a", params={"op": ">", "value": 6})
        step = agent.steps[0]
        assert step.kind is StepKind.COL_VALS_COMPARE
        assert step.params["op"] == "gt"

    def test_spec_and_keywords_together(self, agent):
        """A spec and keywords cannot be mixed."""
        with pytest.raises(TypeError):
            agent.add_step(steps.col_exists("a"), kind="col_exists")

    def test_failed_add_leaves_steps_unchanged(self, agent):
        """A rejected step does not consume an id."""
        agent.add_step(steps.col_exists("a"))
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_vals_regex("c", "("))
        assert len(agent.steps) == 1
        agent.add_step(steps.col_exists("b"))
        assert agent.steps[-1].id == 2


# =============================================================================
# Kinds and aliases
# =============================================================================


class TestKinds:
    @pytest.mark.parametrize(
        "alias,kind",
        [
            ("existence", StepKind.COL_EXISTS),
            ("type", StepKind.COL_IS_TYPE),
            ("comparison", StepKind.COL_VALS_COMPARE),
            ("range", StepKind.COL_VALS_BETWEEN),
            ("uniqueness", StepKind.ROWS_DISTINCT),
            ("schema", StepKind.COL_SCHEMA_MATCH),
            ("conjoint", StepKind.CONJOINTLY),
            ("expr", StepKind.COL_VALS_EXPR),
        ],
    )
    def test_aliases(self, alias, kind):
        """Descriptive kind names resolve to step kinds."""
        assert StepKind.parse(alias) is kind

    def test_unknown_kind(self, agent):
        """An unknown kind is rejected."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step({"kind": "col_vals_sparkle", "columns": ["a"]})

    def test_unknown_field(self, agent):
        """Unknown top-level fields are rejected."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step({"kind": "col_exists", "columns": ["a"], "colour": "red"})

    def test_default_na_handling(self, agent):
        """Comparisons fail nulls by default; distinct rows pass them."""
        agent.add_step(steps.col_vals_gt("a", 1)).add_step(steps.rows_distinct(["a"]))
        assert agent.steps[0].na_handling is NaPolicy.FAIL
        assert agent.steps[1].na_handling is NaPolicy.PASS

    def test_invalid_na_handling(self, agent):
        """na_handling must be pass, fail or skip."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_vals_gt("a", 1, na_handling="maybe"))

    def test_column_reference_operand(self, agent):
        """col() and {"column": ...} both reference another column."""
        agent.add_step(steps.col_vals_gt("a", probity.col("b")))
        agent.add_step(steps.col_vals_lt("b", {"column": "a"}))
        first, second = agent.steps
        assert isinstance(first.predicate, Compare)
        assert first.predicate.value == ColumnRef("b")
        assert first.predicate.columns == ("a", "b")
        assert second.params["value"] == {"column": "a"}

    def test_expression_columns_from_parse(self, agent):
        """Expression columns are discovered from the SQL text."""
        agent.add_step(steps.col_vals_expr("a + b < 15"))
        step = agent.steps[0]
        assert isinstance(step.predicate, Expression)
        assert step.columns == ("a", "b")

    def test_rows_distinct_all_columns(self, agent):
        """rows_distinct without keys spans all columns."""
        agent.add_step(steps.rows_distinct())
        step = agent.steps[0]
        assert isinstance(step.predicate, Distinct)
        assert step.columns == ()

    def test_steps_are_frozen(self, agent):
        """Built steps and their params are immutable."""
        agent.add_step(steps.col_exists("a"))
        step = agent.steps[0]
        with pytest.raises(Exception):
            step.id = 9  # type: ignore[misc]
        with pytest.raises(TypeError):
            step.params["x"] = 1  # type: ignore[index]


# =============================================================================
# Malformed steps
# =============================================================================


class TestInvalidSteps:
    def test_missing_column_for_row_kind(self, agent):
        """A column-valued kind without columns is rejected at add time."""
        with pytest.raises(InvalidStepSpec, match="column"):
            agent.add_step({"kind": "col_vals_compare", "params": {"op": "gt", "value": 1}})

    def test_table_kind_rejects_columns(self, agent):
        """Table-level kinds take no columns."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step({"kind": "row_count_match", "columns": ["a"], "params": {"count": 6}})

    def test_unknown_operator(self, agent):
        """Only known comparison operators are accepted."""
        with pytest.raises(InvalidStepSpec, match="operator"):
            agent.add_step(steps.col_vals_compare("a", "approx", 1))

    def test_missing_value(self, agent):
        """A comparison needs a value."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step({"kind": "col_vals_compare", "columns": ["a"], "params": {"op": "gt"}})

    def test_non_scalar_value(self, agent):
        """A comparison value must be a scalar or column reference."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_vals_gt("a", [1, 2]))

    def test_unknown_param(self, agent):
        """Unknown params for a kind are rejected."""
        with pytest.raises(InvalidStepSpec, match="unknown parameter"):
            agent.add_step({"kind": "col_vals_regex", "columns": ["c"], "params": {"pattern": "x", "flags": "i"}})

    def test_between_bounds_reversed(self, agent):
        """left must not exceed right."""
        with pytest.raises(InvalidStepSpec, match="greater than"):
            agent.add_step(steps.col_vals_between("a", left=10, right=0))

    def test_between_needs_a_bound(self, agent):
        """A range needs at least one bound."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_vals_between("a"))

    def test_invalid_regex(self, agent):
        """The pattern must compile."""
        with pytest.raises(InvalidStepSpec, match="pattern"):
            agent.add_step(steps.col_vals_regex("c", "("))

    def test_in_set_needs_list(self, agent):
        """Set membership needs a list of values."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step({"kind": "col_vals_in_set", "columns": ["c"], "params": {"values": "xyz"}})

    def test_unknown_type(self, agent):
        """col_is_type needs a known logical type."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_is_type("a", "complex"))

    def test_empty_schema(self, agent):
        """A schema match needs at least one column."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_schema_match({}))

    def test_count_negative(self, agent):
        """Counts cannot be negative."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.row_count_match(-1))

    def test_count_min_above_max(self, agent):
        """min must not exceed max."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.row_count_match(min=10, max=2))

    @pytest.mark.parametrize(
        "params",
        [{"min": "100", "max": 200}, {"min": 1, "max": 10.5}, {"max": "3"}, {"min": True}],
    )
    def test_count_bounds_must_be_integers(self, agent, params):
        """A malformed min/max is rejected instead of dropped."""
        with pytest.raises(InvalidStepSpec, match="must be an integer"):
            agent.add_step({"kind": "row_count_match", "params": params})

    def test_expression_without_columns(self, agent):
        """An expression must reference a column."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_vals_expr("1 < 2"))

    @pytest.mark.parametrize(
        "sql",
        ["", "SELECT 1", "a > 1; DROP TABLE t", "pg_sleep(1) IS NULL", "a IN (SELECT a FROM t)"],
    )
    def test_unsafe_expression(self, agent, sql):
        """Statements, subqueries and side effects are rejected."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_vals_expr(sql))

    def test_bad_precondition_string(self, agent):
        """A precondition string must be a boolean filter."""
        with pytest.raises(InvalidStepSpec, match="precondition"):
            agent.add_step(steps.col_vals_gt("a", 1, precondition="DELETE FROM t"))

    def test_bad_precondition_type(self, agent):
        """A precondition must be a string or callable."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_vals_gt("a", 1, precondition=42))

    def test_bad_actions(self, agent):
        """Invalid thresholds and effect names are rejected at add time."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_vals_gt("a", 1, actions={"warn_at": 0}))
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.col_vals_gt("a", 1, actions={"fns": {"warn": ["explode"]}}))

    def test_invalid_step_spec_is_probity_error(self):
        """InvalidStepSpec is part of the ProbityError hierarchy."""
        assert issubclass(InvalidStepSpec, ProbityError)


# =============================================================================
# Conjoint steps
# =============================================================================


class TestConjoint:
    def test_parts_and_columns(self, agent):
        """A conjoint step combines its parts and their columns."""
        agent.add_step(
            steps.conjointly(
                steps.col_vals_gt("a", 6),
                steps.col_vals_lt("b", 10),
                steps.col_vals_not_null("c"),
            )
        )
        step = agent.steps[0]
        assert isinstance(step.predicate, AllOf)
        assert len(step.predicate.parts) == 3
        assert step.columns == ("a", "b", "c")

    def test_multi_column_sub_step_expands_into_parts(self, agent):
        """A multi-column part becomes one part per column."""
        agent.add_step(steps.conjointly(steps.col_vals_gt(["a", "b"], 0)))
        assert len(agent.steps) == 1
        assert len(agent.steps[0].predicate.parts) == 2

    def test_sub_step_precondition_rejected(self, agent):
        """Parts may not carry a precondition."""
        with pytest.raises(InvalidStepSpec, match="precondition"):
            agent.add_step(steps.conjointly(steps.col_vals_gt("a", 6, precondition="b > 1")))

    def test_sub_step_actions_rejected(self, agent):
        """Parts may not carry action levels."""
        with pytest.raises(InvalidStepSpec, match="actions"):
            agent.add_step(steps.conjointly(steps.col_vals_gt("a", 6, actions={"warn_at": 1})))

    def test_table_kind_not_allowed(self, agent):
        """Only row-level kinds can be combined."""
        with pytest.raises(InvalidStepSpec, match="not allowed"):
            agent.add_step(steps.conjointly(steps.rows_distinct(["a"])))

    def test_empty_conjoint(self, agent):
        """A conjoint step needs at least one part."""
        with pytest.raises(InvalidStepSpec):
            agent.add_step(steps.conjointly())


# =============================================================================
# Briefs
# =============================================================================


class TestBriefs:
    def test_auto_brief(self, agent):
        """A brief is generated when none is given."""
        agent.add_step(steps.col_vals_between("a", left=0, right=10))
        agent.add_step(steps.col_exists("z"))
        assert agent.steps[0].brief == "Expect that a in [0, 10]"
        assert agent.steps[1].brief == "Expect that column z exists"

    def test_explicit_brief_and_label(self, agent):
        """An explicit brief and label are kept."""
        agent.add_step(steps.col_vals_gt("a", 0, brief="a is positive", label="pos"))
        assert agent.steps[0].brief == "a is positive"
        assert agent.steps[0].label == "pos"
