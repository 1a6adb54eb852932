# tests/test_package.py
"""
Package-level surface: re-exports and diagnostics.
"""

import paramflow


class TestPackage:

    def test_reexports(self):
        assert paramflow.AnalysisState is paramflow.lattice.AnalysisState
        assert paramflow.analyze is paramflow.analysis.analyze
        assert "ParameterValidationAnalysis" in paramflow.__all__

    def test_list_submodules(self):
        mods = paramflow.list_submodules()
        assert mods == sorted(mods)
        assert "validation_visitor" in mods

    def test_substrate_info(self):
        info = paramflow.substrate_info()
        assert info["package"] == "paramflow"
        assert info["version"] == paramflow.__version__
        assert info["missing_submodules"] == []
