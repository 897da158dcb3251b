"""
breakout_lib - Pre-breakout scanner for Gate.io USDT perpetual futures.

All business logic modules live under organised sub-packages:

    # Core infrastructure
    from src.breakout_lib.core.config import ScanSettings, DetectionThresholds
    from src.breakout_lib.core.logging_config import setup_logging, get_logger
    from src.breakout_lib.core.models import FetchRequest, PerSymbolSeries

    # Upstream access
    from src.breakout_lib.integrations.batch_fetcher import BatchFetcher
    from src.breakout_lib.integrations.gate_loader import GateSeriesLoader

    # Analysis modules
    from src.breakout_lib.analysis.sync import synchronize, trim_series
    from src.breakout_lib.analysis.indicators import compute_indicators
    from src.breakout_lib.analysis.signal import evaluate_breakout
    from src.breakout_lib.analysis.funding import evaluate_funding_history
    from src.breakout_lib.analysis.scan import run_breakout_scan, run_funding_scan

The HTTP service is a sub-package:

    from src.breakout_lib.services.data.main import app

Install in editable mode for development:

    pip install -e .[test]
"""

__version__ = "1.0.0"
