#!/usr/bin/env python3
"""
Example Core Operation Simulation

This script demonstrates how to use the core_ops package to run a
load-follow maneuver, a post-trip estimated critical condition and a
shutdown margin check on the lumped reference core.

Usage:
    python run_simulation.py [--target TARGET] [--study STUDY]

Example:
    python run_simulation.py --target 50 --study maneuver
"""

import argparse
import logging
import sys
import os

# Add parent directory to path for importing core_ops
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core_ops.options import CriticalOption, ECPOption, SteadyOption
from core_ops.reactor import create_reactor_core


def run_basic_simulation(burnup: float = 0.0):
    """
    Find the critical boron concentration at full power.

    Args:
        burnup: Core average burnup [MWD/MTU]
    """
    print("\n" + "="*70)
    print("       CRITICAL BORON AT FULL POWER")
    print("="*70)

    print("\nInitializing reactor core model...")
    reactor = create_reactor_core()
    option = reactor.engine.set_burnup(burnup, SteadyOption())
    reactor.calc_static(option)

    reactor.print_summary()
    return reactor


def run_maneuver(target: float = 50.0, rate: float = 0.05, hold_hours: float = 6.0):
    """
    Daily load-follow: ramp down to `target` %, hold, and return to full power.

    Args:
        target: Reduced power [%]
        rate: Ramp rate [%/s]
        hold_hours: Time at reduced power [h]
    """
    print("\n" + "="*70)
    print(f"       LOAD FOLLOW 100% -> {target:.0f}% -> 100%")
    print("="*70)

    reactor = create_reactor_core()
    reactor.engine.set_asi_band({0.0: (-0.6, 0.6), 100.0: (-0.27, 0.27)})

    maneuver = reactor.flexible()
    maneuver.set_power_schedule(
        100.0, target, rate, rate, hold_hours * 3600.0,
        before=3600.0, after=3 * 3600.0, asi_allowance=0.05,
    )
    maneuver.set_time_step(900.0)
    results = reactor.run_operation(maneuver, SteadyOption())

    print(f"\n{'time [h]':>10} {'power [%]':>10} {'ppm':>8} {'ASI':>8} {'R5 [cm]':>8}")
    print("-" * 50)
    for r in results[::4]:
        print(
            f"{r.time / 3600.0:>10.2f} {r.power_level * 100:>10.1f} {r.boron_ppm:>8.1f} "
            f"{r.asi:>+8.3f} {r.rod_positions['R5']:>8.1f}"
        )
    return reactor


def run_ecp(hours: float = 12.0):
    """
    Estimated critical rod position after a trip from full power.

    Args:
        hours: Time after the trip [h]
    """
    print("\n" + "="*70)
    print(f"       ESTIMATED CRITICAL POSITION {hours:.0f} h AFTER TRIP")
    print("="*70)

    reactor = create_reactor_core()
    reactor.calc_static(SteadyOption())
    hot_boron = reactor.engine.state.boron

    ecp = reactor.ecp()
    ecp.set_option(ECPOption.ECP_CBC)
    ecp.set_target_cbc(hot_boron + 200.0)
    ecp.set_time(hours * 3600.0, 3600.0, 3600.0)
    results = reactor.run_operation(ecp, SteadyOption(ppm=hot_boron))

    final = results[-1]
    print(f"\n  Boron at trip:          {hot_boron:>10.1f} ppm")
    print(f"  Boron at ECP:           {final.boron_ppm:>10.1f} ppm")
    for rod_id, position in final.rod_positions.items():
        print(f"  Rod {rod_id:<19} {position:>10.1f} cm")
    print(f"  k_eff:                  {final.eigenvalue:>10.5f}")
    return reactor


def run_shutdown_margin():
    """
    Shutdown margin at full power with the most reactive bank stuck.
    """
    print("\n" + "="*70)
    print("       SHUTDOWN MARGIN")
    print("="*70)

    reactor = create_reactor_core()
    reactor.calc_static(SteadyOption())

    analyzer = reactor.shutdown_margin()
    analyzer.set_stuck_rods(None, ["A", "B"])
    sdm = reactor.run_shutdown_margin(analyzer=analyzer)

    print(f"\n  Bite worth:             {sdm.bite_worth:>10.1f} pcm")
    print(f"  Stuck rod ({sdm.stuck_rod}):          {sdm.stuck_rod_worth:>10.1f} pcm")
    print(f"  Power defect:           {sdm.power_defect:>10.1f} pcm")
    print(f"  Xenon worth:            {sdm.xenon_worth:>10.1f} pcm")
    print(f"  Samarium worth:         {sdm.samarium_worth:>10.1f} pcm")
    print(f"  MARGIN:                 {sdm.margin:>10.1f} pcm")
    return reactor


def run_coastdown(target: float = 80.0, days: float = 30.0):
    """
    End-of-cycle coastdown at fixed boron held critical by the rods.
    """
    print("\n" + "="*70)
    print(f"       COASTDOWN TO {target:.0f}% OVER {days:.0f} DAYS")
    print("="*70)

    reactor = create_reactor_core()
    option = reactor.engine.set_burnup(15000.0, SteadyOption())
    reactor.calc_static(option)

    coastdown = reactor.coastdown()
    coastdown.set_target_power(target)
    coastdown.set_time(days * 86400.0, 5 * 86400.0)
    results = reactor.run_operation(
        coastdown, SteadyOption(ppm=reactor.engine.state.boron, search_option=CriticalOption.ROD)
    )
    for r in results:
        print(f"  day {r.time / 86400.0:>5.1f}: P={r.power_level * 100:6.1f}%  R5={r.rod_positions['R5']:6.1f} cm")
    return reactor


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Core Operation Simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Critical boron at full power
  %(prog)s --study maneuver --target 60
  %(prog)s --study all              # Run all studies
        """
    )

    parser.add_argument(
        "--burnup",
        type=float,
        default=0.0,
        help="Core average burnup in MWD/MTU (default: 0)"
    )
    parser.add_argument(
        "--target",
        type=float,
        default=50.0,
        help="Reduced power of the maneuver in %% (default: 50)"
    )
    parser.add_argument(
        "--study",
        choices=["maneuver", "ecp", "sdm", "coastdown", "all"],
        help="Run specific study type"
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Output JSON file path"
    )
    parser.add_argument(
        "--log",
        type=str,
        help="Write the calculation log to this file"
    )

    args = parser.parse_args()

    if not 0.0 <= args.target <= 100.0:
        print(f"Error: Target power must be between 0-100%, got {args.target}%")
        sys.exit(1)

    if args.log:
        logging.basicConfig(
            filename=args.log,
            level=logging.INFO,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.study == "maneuver":
            reactor = run_maneuver(args.target)
        elif args.study == "ecp":
            reactor = run_ecp()
        elif args.study == "sdm":
            reactor = run_shutdown_margin()
        elif args.study == "coastdown":
            reactor = run_coastdown()
        elif args.study == "all":
            run_basic_simulation(args.burnup)
            run_maneuver(args.target)
            run_ecp()
            run_coastdown()
            reactor = run_shutdown_margin()
        else:
            reactor = run_basic_simulation(args.burnup)

        if args.output:
            reactor.to_json(args.output)
            print(f"\nResults exported to: {args.output}")

    except Exception as e:
        print(f"\nError during simulation: {e}")
        raise


if __name__ == "__main__":
    main()
