"""Unit tests for FormulaDependencyGraph."""

from tablegraph.formula.dependencies import FormulaDependencyGraph


class TestFormulaDependencyGraph:
    """Tests for dependency tracking between formula fields."""

    def test_add_formula_field(self):
        """Test adding a formula and its dependencies."""
        graph = FormulaDependencyGraph()
        ok, error = graph.add_formula_field("total", {"price", "qty"})

        assert ok is True
        assert error is None
        assert graph.get_dependencies("total") == {"price", "qty"}
        assert graph.get_dependents("price") == {"total"}

    def test_replacing_dependencies_unlinks_old_ones(self):
        graph = FormulaDependencyGraph()
        graph.add_formula_field("f", {"a"})
        graph.add_formula_field("f", {"b"})

        assert graph.get_dependents("a") == set()
        assert graph.get_dependents("b") == {"f"}

    def test_direct_cycle_is_rejected(self):
        """A formula may not read a formula that reads it."""
        graph = FormulaDependencyGraph()
        graph.add_formula_field("a", {"b"})
        ok, error = graph.add_formula_field("b", {"a"})

        assert ok is False
        assert "Circular" in error
        assert graph.get_dependencies("b") == set()

    def test_indirect_cycle_is_detected(self):
        graph = FormulaDependencyGraph()
        graph.add_formula_field("b", {"a"})
        graph.add_formula_field("c", {"b"})

        assert graph.detect_circular_reference("a", {"c"}) is True
        assert graph.detect_circular_reference("d", {"c"}) is False

    def test_self_reference_is_a_cycle(self):
        graph = FormulaDependencyGraph()
        assert graph.detect_circular_reference("a", {"a"}) is True

    def test_affected_fields_are_transitive(self):
        """Changing a base field reaches formulas that read other formulas."""
        graph = FormulaDependencyGraph.from_formulas(
            {"subtotal": ["price", "qty"], "total": ["subtotal", "tax"], "label": ["name"]}
        )

        assert graph.get_affected_fields(["price"]) == ["subtotal", "total"]
        assert graph.get_affected_fields(["tax"]) == ["total"]
        assert graph.get_affected_fields(["other"]) == []

    def test_evaluation_order_respects_dependencies(self):
        graph = FormulaDependencyGraph.from_formulas(
            {"c": ["b"], "b": ["a"], "a": ["x"]}
        )
        ordered, cyclic = graph.get_evaluation_order(["c", "b", "a"])

        assert ordered == ["a", "b", "c"]
        assert cyclic == set()

    def test_stored_cycles_are_reported_not_ordered(self):
        """Cycles already in stored definitions come back as cyclic."""
        graph = FormulaDependencyGraph.from_formulas(
            {"a": ["b"], "b": ["a"], "c": ["a"], "d": ["x"]}
        )
        ordered, cyclic = graph.get_evaluation_order(["a", "b", "c", "d"])

        assert ordered == ["d"]
        assert cyclic == {"a", "b", "c"}
        assert graph.cyclic_fields() == {"a", "b", "c"}

    def test_remove_formula_field(self):
        graph = FormulaDependencyGraph.from_formulas({"f": ["a"]})
        graph.remove_formula_field("f")

        assert graph.get_dependencies("f") == set()
        assert graph.get_dependents("a") == set()
