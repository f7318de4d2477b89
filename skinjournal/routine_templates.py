import copy

# ==================== DEFAULT ROUTINES ====================
# Served when the user has no skin scan yet or the AI gateway fails.
# Skin types without their own template get the normal one.

DEFAULT_ROUTINES = {
    'oily': {
        'morning_routine': {
            'routine_name': 'Morning Routine for Oily Skin',
            'steps': [
                {'order': 1, 'step_name': 'Cleanser', 'product_name': 'Gel Cleanser', 'instructions': 'Massage a gel cleanser gently for 60 seconds', 'why': 'Removes excess oil without drying the skin'},
                {'order': 2, 'step_name': 'Toner', 'product_name': 'Hydrating Toner', 'instructions': 'Apply with a cotton pad or pat in with your hands', 'why': 'Balances skin pH and tightens pores'},
                {'order': 3, 'step_name': 'Serum', 'product_name': 'Niacinamide Serum', 'instructions': 'Spread 2-3 drops over the whole face', 'why': 'Controls oil production and refines texture'},
                {'order': 4, 'step_name': 'Moisturizer', 'product_name': 'Oil-Free Moisturizer', 'instructions': 'Use a light layer, skip the T-zone if needed', 'why': 'Keeps skin hydrated without adding oil'},
                {'order': 5, 'step_name': 'Sunscreen', 'product_name': 'Gel Sunscreen SPF 50', 'instructions': 'Apply generously and reapply every 2 hours', 'why': 'UV exposure can trigger oil production'},
            ],
        },
        'evening_routine': {
            'routine_name': 'Evening Routine for Oily Skin',
            'steps': [
                {'order': 1, 'step_name': 'Cleansing Oil', 'product_name': 'Cleansing Oil', 'instructions': 'Massage onto dry skin for one minute', 'why': 'Lifts sunscreen and oil-based dirt'},
                {'order': 2, 'step_name': 'Cleanser', 'product_name': 'Gel Cleanser', 'instructions': 'Follow with a foaming gel cleanser', 'why': 'Clears what is left and refreshes the skin'},
                {'order': 3, 'step_name': 'Exfoliating Toner', 'product_name': 'BHA Toner', 'instructions': 'Use 2-3 times a week', 'why': 'Gentle exfoliation keeps pores clear'},
                {'order': 4, 'step_name': 'Night Cream', 'product_name': 'Light Night Cream', 'instructions': 'Apply a thin layer before bed', 'why': 'Keeps skin hydrated overnight'},
            ],
        },
        'weekly_treatments': [
            {'treatment_name': 'Clay Mask', 'frequency': '1-2x a week', 'product_name': 'Kaolin Clay Mask', 'instructions': 'Apply to the T-zone for 10-15 minutes', 'why': 'Absorbs excess oil and cleans pores'},
        ],
        'tips': [
            'Do not skip moisturizer on oily skin: dehydration makes it produce more oil',
            'Use blotting paper during the day instead of washing again',
            'Avoid high-alcohol products that trigger rebound oil',
        ],
    },
    'dry': {
        'morning_routine': {
            'routine_name': 'Morning Routine for Dry Skin',
            'steps': [
                {'order': 1, 'step_name': 'Cleanser', 'product_name': 'Cream Cleanser', 'instructions': 'Use a gentle cream cleanser with lukewarm water', 'why': 'Cleans without stripping natural moisture'},
                {'order': 2, 'step_name': 'Toner', 'product_name': 'Hydrating Toner', 'instructions': 'Pat into still damp skin', 'why': 'Adds an extra layer of hydration'},
                {'order': 3, 'step_name': 'Serum', 'product_name': 'Hyaluronic Acid Serum', 'instructions': 'Apply to damp skin', 'why': 'Draws in and holds moisture'},
                {'order': 4, 'step_name': 'Moisturizer', 'product_name': 'Rich Moisturizer', 'instructions': 'Layer if the skin still feels tight', 'why': 'Locks in moisture and supports the skin barrier'},
                {'order': 5, 'step_name': 'Sunscreen', 'product_name': 'Moisturizing Sunscreen SPF 50', 'instructions': 'Pick a sunscreen with added moisturizers', 'why': 'UV exposure makes dryness worse'},
            ],
        },
        'evening_routine': {
            'routine_name': 'Evening Routine for Dry Skin',
            'steps': [
                {'order': 1, 'step_name': 'Cleansing Balm', 'product_name': 'Cleansing Balm', 'instructions': 'Melt the balm over makeup and rinse', 'why': 'Cleans gently without stripping'},
                {'order': 2, 'step_name': 'Essence', 'product_name': 'Hydrating Essence', 'instructions': 'Layer 2-3 times', 'why': 'Intensive hydration'},
                {'order': 3, 'step_name': 'Serum', 'product_name': 'Ceramide Serum', 'instructions': 'Focus on the driest areas', 'why': 'Repairs the skin barrier'},
                {'order': 4, 'step_name': 'Night Cream', 'product_name': 'Rich Night Cream', 'instructions': 'Apply as the last step', 'why': 'Nourishes the skin while you sleep'},
            ],
        },
        'weekly_treatments': [
            {'treatment_name': 'Hydrating Mask', 'frequency': '2-3x a week', 'product_name': 'Sheet or Sleeping Mask', 'instructions': 'Sheet mask for 15-20 minutes or a sleeping mask overnight', 'why': 'Intensive hydration'},
        ],
        'tips': [
            'Apply skincare to damp skin to lock in moisture',
            'Use a humidifier in air-conditioned rooms',
            'Wash with lukewarm, never hot, water',
        ],
    },
    'normal': {
        'morning_routine': {
            'routine_name': 'Morning Routine for Normal Skin',
            'steps': [
                {'order': 1, 'step_name': 'Cleanser', 'product_name': 'Gentle Cleanser', 'instructions': 'Wash with a gentle cleanser', 'why': 'Cleans without upsetting the skin balance'},
                {'order': 2, 'step_name': 'Toner', 'product_name': 'Balancing Toner', 'instructions': 'Apply to refresh the skin', 'why': 'Balances skin pH'},
                {'order': 3, 'step_name': 'Serum', 'product_name': 'Vitamin C Serum', 'instructions': 'Use an antioxidant serum in the morning', 'why': 'Protects against free radicals and brightens'},
                {'order': 4, 'step_name': 'Moisturizer', 'product_name': 'Light Moisturizer', 'instructions': 'Apply a thin layer', 'why': 'Keeps skin hydrated'},
                {'order': 5, 'step_name': 'Sunscreen', 'product_name': 'Sunscreen SPF 50', 'instructions': 'Apply as the last step', 'why': 'Protects against UV damage'},
            ],
        },
        'evening_routine': {
            'routine_name': 'Evening Routine for Normal Skin',
            'steps': [
                {'order': 1, 'step_name': 'Double Cleanse', 'product_name': 'Cleansing Oil + Gentle Cleanser', 'instructions': 'Cleanse twice', 'why': 'Removes sunscreen and dirt thoroughly'},
                {'order': 2, 'step_name': 'Toner', 'product_name': 'Hydrating Toner', 'instructions': 'Apply for hydration', 'why': 'Prepares skin for the next steps'},
                {'order': 3, 'step_name': 'Serum', 'product_name': 'Niacinamide or Retinol', 'instructions': 'Alternate serums as needed', 'why': 'Targets specific concerns'},
                {'order': 4, 'step_name': 'Night Moisturizer', 'product_name': 'Night Moisturizer', 'instructions': 'Use a slightly richer moisturizer', 'why': 'Repairs skin while you sleep'},
            ],
        },
        'weekly_treatments': [
            {'treatment_name': 'Exfoliation', 'frequency': '1-2x a week', 'product_name': 'AHA/BHA Exfoliant', 'instructions': 'Use a gentle chemical exfoliant', 'why': 'Removes dead skin cells and brightens'},
        ],
        'tips': [
            'Normal skin tolerates actives well, a good time to try new ingredients',
            'Stay consistent with the basics even when skin looks good',
            'Watch for seasonal changes in your skin',
        ],
    },
}


def get_default_routine(skin_type: str) -> dict:
    """Template routine for a skin type ('oily sensitive' uses the oily one)"""
    key = (skin_type or '').strip().lower().split(' ')[0]
    return copy.deepcopy(DEFAULT_ROUTINES.get(key, DEFAULT_ROUTINES['normal']))
