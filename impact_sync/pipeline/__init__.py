"""End-to-end swing analysis pipeline."""

from impact_sync.pipeline.orchestrator import PipelineConfig, SwingAnalysisPipeline, SwingAnalysisResult

__all__ = ["PipelineConfig", "SwingAnalysisPipeline", "SwingAnalysisResult"]
