# wb_sim/planning/__init__.py
