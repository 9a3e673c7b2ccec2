import logging

import numpy as np

from georobust import AffineTransformation2DRobustEstimator, RobustEstimatorListener, RobustEstimatorMethod
from georobust.solvers.affine import apply_T


class PrintProgress(RobustEstimatorListener):

    def on_estimate_progress_change(self, estimator, progress: float) -> None:
        print(f"  progress: {progress:.0%}")


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    rng = np.random.default_rng(0)

    # True affine transform
    T_true = np.array(
        [[1.05, 0.02, 15.0],
         [-0.01, 0.98, -8.0],
         [0.0,  0.0,  1.0]],
        dtype=np.float64,
    )

    # Generate inlier points
    n_in = 200
    pts0 = rng.uniform([0, 0], [640, 480], size=(n_in, 2)).astype(np.float64)
    pts1 = apply_T(T_true, pts0)

    # Add Gaussian noise (pixel noise)
    pts1 += rng.normal(0.0, 0.8, size=pts1.shape)

    # Add outliers (wrong matches)
    n_out = 80
    o0 = rng.uniform([0, 0], [640, 480], size=(n_out, 2)).astype(np.float64)
    o1 = rng.uniform([0, 0], [640, 480], size=(n_out, 2)).astype(np.float64)

    pts0_all = np.vstack([pts0, o0]).astype(np.float64)
    pts1_all = np.vstack([pts1, o1]).astype(np.float64)

    print("T_true:\n", T_true)
    for method in RobustEstimatorMethod:
        # Matches closer to the true transform get a higher quality score
        scores = np.concatenate([np.full(n_in, 1.0), np.full(n_out, 0.1)]) + rng.uniform(0, 0.5, n_in + n_out)

        estimator = AffineTransformation2DRobustEstimator.create(
            pts0_all, pts1_all, method=method, quality_scores=scores, listener=PrintProgress(),
        )
        estimator.threshold = 3.0
        estimator.progress_delta = 0.25
        estimator.keep_covariance = True

        print(f"\n{method.name}")
        T_est = estimator.estimate()
        data = estimator.inliers_data

        print("T_est:\n", T_est)
        print("num_inliers:", data.num_inliers, "/", pts0_all.shape[0])
        print("threshold:", data.threshold)
        print("iterations:", data.iterations)
        if estimator.covariance is not None:
            print("parameter std:", np.sqrt(np.diag(estimator.covariance)))


if __name__ == "__main__":
    main()
