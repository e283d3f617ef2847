import numpy as np
import pandas as pd
import anndata as ad
from pathlib import Path

n_cells = 200
n_genes = 300
n_mito = 13

rng = np.random.default_rng(42)

# a few highly expressed genes so the highest-expression plot has structure
lam = rng.gamma(shape=0.6, scale=2.0, size=n_genes)
lam[:5] *= 40
counts = rng.poisson(lam=lam, size=(n_cells, n_genes)).astype(np.float32)

# some low-quality cells with inflated mitochondrial fraction
bad = rng.choice(n_cells, size=15, replace=False)
counts[np.ix_(bad, np.arange(n_genes - n_mito, n_genes))] *= 8

genes = [f"GENE{j}" for j in range(n_genes - n_mito)] + [f"MT-G{j}" for j in range(n_mito)]

obs = pd.DataFrame(
    {
        "batch": rng.choice(["b1", "b2"], size=n_cells),
        "mutation_status": rng.choice(["negative", "positive"], size=n_cells),
    },
    index=[f"cell_{i}" for i in range(n_cells)],
)
var = pd.DataFrame({"symbol": genes}, index=[f"ENSG{j:05d}" for j in range(n_genes)])

adata = ad.AnnData(X=counts.copy(), obs=obs, var=var)
adata.layers["counts"] = counts

Path("data").mkdir(exist_ok=True)
adata.write_h5ad("data/demo_qc.h5ad")
print("wrote data/demo_qc.h5ad", adata.shape)
