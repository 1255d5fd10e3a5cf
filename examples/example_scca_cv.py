# Example: cross_validate_scca over a penalty grid
import numpy as np
import matplotlib.pyplot as plt
from pyscca import cross_validate_scca

rng = np.random.default_rng(1)
n, p, q = 200, 20, 10
z = rng.standard_normal(n)
X = rng.standard_normal((n, p))
Y = rng.standard_normal((n, q))
X[:, :3] = z[:, None] + 0.5 * rng.standard_normal((n, 3))
Y[:, :2] = z[:, None] + 0.5 * rng.standard_normal((n, 2))

grid = np.linspace(0.0, 0.5, 11)
cv = cross_validate_scca(X, Y, lambda1_grid=grid, lambda2_grid=grid, nfolds=5,
                         seed=0, n_jobs=-1)
print("Selected lambda1:", cv.best_lambda1, "lambda2:", cv.best_lambda2)
print(cv.scores.sort_values("cor", ascending=False).head())

# Plot: held-out correlation over the grid
frame = cv.grid_frame()
plt.figure()
plt.imshow(frame.to_numpy(), origin="lower", aspect="auto",
           extent=[grid[0], grid[-1], grid[0], grid[-1]])
plt.colorbar(label="mean held-out correlation")
plt.scatter([cv.best_lambda2], [cv.best_lambda1], marker="x", color="red")
plt.xlabel("lambda2")
plt.ylabel("lambda1")
plt.title("cross_validate_scca: penalty grid")
plt.tight_layout()
plt.show()

if cv.refit_result is not None:
    print("non-zero X weights:", np.flatnonzero(cv.refit_result.U[:, 0]))
    print("non-zero Y weights:", np.flatnonzero(cv.refit_result.V[:, 0]))
