from setuptools import setup, find_packages

setup(
    name='sgbcart',
    version='1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    py_modules=[
        'booster',
        'cand_sgb',
        'cut_accum',
        'frontier',
        'node_scorer',
        'predictor_frame',
        'response',
        'sampler',
        'trainer',
    ],
    python_requires='>=3.10',
    install_requires=['numpy'],
    extras_require={'test': ['pytest']},
    description='CART split search, node scoring and boosting residuals for bagged and boosted forests',
)
