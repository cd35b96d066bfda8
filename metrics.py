"""
metrics.py - Model store and pipeline metrics for monitoring
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest

model_loads = Counter(
    'nlp_pipeline_model_loads_total',
    'Model load attempts',
    ['stage', 'language', 'outcome']  # 'loaded', 'unavailable' or 'corrupt'
)

model_downloads = Counter(
    'nlp_pipeline_model_downloads_total',
    'Model artifact downloads',
    ['stage', 'language', 'outcome']  # 'downloaded', 'not_found' or 'failed'
)

model_cache_hits = Counter(
    'nlp_pipeline_model_cache_hits_total',
    'Model store cache hits',
    ['stage']
)

loaded_models = Gauge(
    'nlp_pipeline_loaded_models',
    'Models currently held in memory',
    ['stage']
)

pipeline_runs = Counter(
    'nlp_pipeline_runs_total',
    'Pipeline runs',
    ['pipeline', 'language', 'status']
)

pipeline_duration = Histogram(
    'nlp_pipeline_run_duration_seconds',
    'Pipeline run duration',
    ['pipeline']
)


def get_metrics():
    """Get Prometheus metrics"""
    return generate_latest()
