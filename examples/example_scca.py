# Example: fit_scca on data with a planted sparse signal
import numpy as np
import matplotlib.pyplot as plt
from pyscca import fit_scca, scca_transform

rng = np.random.default_rng(0)
n, p, q, ndim = 200, 20, 10, 2
z = rng.standard_normal(n)
X = rng.standard_normal((n, p))
Y = rng.standard_normal((n, q))
X[:, :3] = z[:, None] + 0.5 * rng.standard_normal((n, 3))
Y[:, :2] = z[:, None] + 0.5 * rng.standard_normal((n, 2))

fit = fit_scca(X, Y, lambda1=0.2, lambda2=0.2, ndim=ndim)
print("singular values:", fit.d)
print("canonical correlations:", fit.cor)
print("non-zero X weights (dim 1):", np.flatnonzero(fit.U[:, 0]))
print("non-zero Y weights (dim 1):", np.flatnonzero(fit.V[:, 0]))

# Plot: weights of the first canonical pair
fig, axes = plt.subplots(1, 2, figsize=(9, 3))
axes[0].bar(range(p), fit.U[:, 0])
axes[0].set_title("U[:, 0]")
axes[1].bar(range(q), fit.V[:, 0])
axes[1].set_title("V[:, 0]")
plt.tight_layout()
plt.show()

# Plot: first canonical variates
XU, YV = scca_transform(fit, X, Y)
plt.figure()
plt.scatter(XU[:, 0], YV[:, 0], s=10)
plt.xlabel("XU[:,0]")
plt.ylabel("YV[:,0]")
plt.title("First canonical variates (fit_scca)")
plt.tight_layout()
plt.show()
