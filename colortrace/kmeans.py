"""K-means++ color clustering."""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from scipy.spatial.distance import cdist

from colortrace.color_space import lab_to_rgb, rgb_to_lab
from colortrace.types import Deadline, PaletteEntry, VectorizerConfig

logger = logging.getLogger(__name__)


@dataclass
class KMeansResult:
    """Cluster centers sorted by descending member count."""
    centers: np.ndarray  # (k, 3)
    counts: np.ndarray  # (k,)
    iterations: int
    displacements: List[float] = field(default_factory=list)


def kmeans_plus_plus_init(
    samples: np.ndarray,
    n_clusters: int,
    rng: np.random.Generator
) -> np.ndarray:
    """
    Choose initial centers with K-means++ (D^2 weighting).

    Args:
        samples: (N, 3) float array
        n_clusters: Number of centers to choose
        rng: Random generator

    Returns:
        (n_clusters, 3) array of centers taken from the samples
    """
    n = len(samples)
    centers = [samples[rng.integers(n)]]

    # Distance of every sample to its nearest chosen center
    nearest = np.linalg.norm(samples - centers[0], axis=1)

    while len(centers) < n_clusters:
        cumulative = np.cumsum(nearest ** 2)
        threshold = rng.uniform(0.0, cumulative[-1])
        index = min(int(np.searchsorted(cumulative, threshold, side='left')), n - 1)

        center = samples[index]
        centers.append(center)
        nearest = np.minimum(nearest, np.linalg.norm(samples - center, axis=1))

    return np.array(centers, dtype=np.float64)


def kmeans(
    samples: np.ndarray,
    n_clusters: int,
    difference_distance: float = 5.0,
    rng: Optional[np.random.Generator] = None,
    max_iterations: int = 100,
    deadline: Optional[Deadline] = None
) -> KMeansResult:
    """
    Cluster samples with K-means++ initialization and Lloyd iterations.

    Iteration stops once no center moves by ``difference_distance`` or more,
    or after ``max_iterations``. Clusters are stably sorted by descending
    member count after every iteration; an empty cluster keeps its center.

    Args:
        samples: Non-empty (N, 3) array
        n_clusters: Number of clusters
        difference_distance: Convergence threshold on center displacement
        rng: Random generator, a fresh unseeded one if None
        max_iterations: Hard cap on Lloyd iterations
        deadline: Optional deadline checked every iteration

    Returns:
        KMeansResult

    Raises:
        ValueError: If samples is empty
        VectorizationTimeout: If the deadline expires
    """
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim != 2 or len(samples) == 0:
        raise ValueError("kmeans needs a non-empty (N, 3) sample array")

    rng = rng if rng is not None else np.random.default_rng()
    centers = kmeans_plus_plus_init(samples, n_clusters, rng)
    counts = np.zeros(n_clusters, dtype=np.int64)
    displacements: List[float] = []

    iteration = 0
    while True:
        if deadline is not None:
            deadline.check("K-means clustering")

        # Nearest center per sample; argmin picks the first on ties
        labels = np.argmin(cdist(samples, centers), axis=1)
        counts = np.bincount(labels, minlength=n_clusters)

        sums = np.zeros_like(centers)
        np.add.at(sums, labels, samples)
        filled = counts > 0
        new_centers = centers.copy()
        new_centers[filled] = sums[filled] / counts[filled, None]

        displacement = float(np.max(np.linalg.norm(new_centers - centers, axis=1)))
        displacements.append(displacement)

        order = np.argsort(-counts, kind='stable')
        centers = new_centers[order]
        counts = counts[order]

        iteration += 1
        logger.debug(f"K-means iteration {iteration}: max displacement {displacement:.3f}")

        if displacement < difference_distance:
            break
        if iteration >= max_iterations:
            logger.warning(
                f"K-means stopped after {max_iterations} iterations "
                f"(displacement {displacement:.3f})"
            )
            break

    return KMeansResult(
        centers=centers,
        counts=counts,
        iterations=iteration,
        displacements=displacements
    )


def cluster_colors(
    samples_rgb: np.ndarray,
    config: VectorizerConfig,
    rng: Optional[np.random.Generator] = None,
    deadline: Optional[Deadline] = None
) -> List[PaletteEntry]:
    """
    Cluster RGB samples into palette entries.

    Args:
        samples_rgb: (N, 3) RGB samples in [0, 255]
        config: Configuration (clusters_num, Lab flag, convergence settings)
        rng: Random generator
        deadline: Optional deadline

    Returns:
        One PaletteEntry per non-empty cluster with its member count as rate,
        largest cluster first
    """
    samples_rgb = np.asarray(samples_rgb, dtype=np.float64)
    if config.kmeans_use_lab_color:
        samples = rgb_to_lab(samples_rgb)
    else:
        samples = samples_rgb

    n_clusters = min(config.clusters_num, len(samples))
    result = kmeans(
        samples,
        n_clusters,
        difference_distance=config.kmeans_difference_distance,
        rng=rng,
        max_iterations=config.kmeans_max_iterations,
        deadline=deadline
    )

    if config.kmeans_use_lab_color:
        centers_rgb = lab_to_rgb(result.centers)
    else:
        centers_rgb = np.clip(np.rint(result.centers), 0, 255).astype(np.int32)

    entries = [
        PaletteEntry(rgb=tuple(int(c) for c in rgb), rate=float(count))
        for rgb, count in zip(centers_rgb, result.counts)
        if count > 0
    ]

    logger.info(
        f"K-means found {len(entries)} clusters from {len(samples)} samples "
        f"in {result.iterations} iterations"
    )
    return entries
