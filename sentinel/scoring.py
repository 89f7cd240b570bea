from typing import Iterable, List

import numpy as np

from .config import SubMetricWeights
from .types import MetricDetails, RecognitionSample


DEFAULT_WEIGHTS = SubMetricWeights()


def valid_samples(samples: Iterable[RecognitionSample]) -> List[RecognitionSample]:
    """
    Valid samples in a stable order, so the same bucket always aggregates
    the same way regardless of arrival order.
    """
    kept = [s for s in samples if s.valid]
    kept.sort(key=lambda s: (s.timestamp, s.stress, s.aggression, s.negative, s.instability))
    return kept


def aggregate_details(samples: Iterable[RecognitionSample]) -> MetricDetails:
    """
    Mean of each sub-metric over the bucket's valid samples.
    """
    kept = valid_samples(samples)
    if not kept:
        return MetricDetails()
    matrix = np.array(
        [[s.stress, s.aggression, s.negative, s.instability] for s in kept],
        dtype=np.float64,
    )
    means = np.clip(matrix.mean(axis=0), 0.0, 100.0)
    return MetricDetails(
        stress=round(float(means[0]), 2),
        aggression=round(float(means[1]), 2),
        negative=round(float(means[2]), 2),
        instability=round(float(means[3]), 2),
    )


def fuse(details: MetricDetails, weights: SubMetricWeights = DEFAULT_WEIGHTS) -> float:
    score = (
        weights.stress * details.stress
        + weights.aggression * details.aggression
        + weights.negative * details.negative
        + weights.instability * details.instability
    )
    return round(min(100.0, max(0.0, score)), 2)


def sample_score(sample: RecognitionSample, weights: SubMetricWeights = DEFAULT_WEIGHTS) -> float:
    return fuse(sample.details, weights)


def composite_score(samples: Iterable[RecognitionSample], weights: SubMetricWeights = DEFAULT_WEIGHTS) -> float:
    return fuse(aggregate_details(samples), weights)
