# wb_sim/simulation/__init__.py
