"""Run chart-operator as a module."""

from chart_operator.tool.chart_operator import main

main()
