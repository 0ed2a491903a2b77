"""
Core engines, ordered by data flow:

    spatial_index -> kernel_field -> divergence -> metric_tensor
    adjacency -> graph -> laplacian -> spectral
                       -> agglomerative
"""
