import sys
import os

TESTS_DIR = os.path.dirname(__file__)

# backend/ modules are imported by bare name, as server.py does
sys.path.insert(0, os.path.join(TESTS_DIR, "..", "backend"))

# scripts/ for the curriculum validator CLI
sys.path.insert(0, os.path.join(TESTS_DIR, "..", "scripts"))

# roadmap_utils fixtures are shared with tests/backend_tests/
sys.path.insert(0, TESTS_DIR)
