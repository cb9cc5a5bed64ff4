# wb_sim/assets/__init__.py
