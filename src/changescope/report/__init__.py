"""Impact report rendering."""

from changescope.report.renderer import render_candidate_summary, render_impact_report

__all__ = ["render_candidate_summary", "render_impact_report"]
