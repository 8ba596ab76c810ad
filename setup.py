from setuptools import setup, find_packages

setup(
    name='cartforest',
    version='1.0',
    packages=find_packages(exclude=['tests', 'experiments']),
    py_modules=[
        'bagging',
        'decision_tree',
        'errors',
        'estimator',
        'feature_matrix',
        'one_vs_rest',
        'random_forest',
        'serialization',
        'split_search',
        'tree_builder',
    ],
    description='CART decision trees and random forests over dense and sparse matrices',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    python_requires='>=3.9',
    install_requires=[
        'numpy',
        'scipy',
        'joblib',
        'pandas',
    ],
    extras_require={
        'test': ['pytest'],
    },
)
