"""Test package for the N-Back Trainer.

Core tests drive the engine and its collaborators with a fake clock; the
smoke tests run the pygame UI headlessly using the dummy SDL drivers.
To run these tests, execute ``pytest`` from the project root.
"""
