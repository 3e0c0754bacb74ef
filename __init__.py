"""
sgbcart

Split search, node scoring and boosting residuals for decision-tree
ensembles, bagged (random-forest style) or boosted (sequential residual
fitting), over numeric or categorical responses.

Splits are CART cuts found by a right-to-left scan over rank-ordered
observations, with sparse predictors contributing one implicit
pseudo-observation and optional monotone constraints on regression cuts.
"""
